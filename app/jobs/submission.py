"""Submission interface: validate a request, enqueue a task, return immediately."""

import logging
from typing import Any, Dict, Optional

from app.config import settings
from app.errors import ValidationError
from app.io.image_payload import normalize_base64_image, normalize_image
from app.jobs.models import AnalysisTask, TaskInput, TaskKind
from app.jobs.store import TaskStore

logger = logging.getLogger(__name__)


async def submit_task(
    store: TaskStore,
    kind: TaskKind,
    image: Optional[str] = None,
    text: Optional[str] = None,
    user_id: Optional[str] = None,
    image_bytes: Optional[bytes] = None,
    **context: Any,
) -> AnalysisTask:
    """Create and enqueue a task. Raises ValidationError without creating anything.

    image: base64 or data-URL string; image_bytes: raw upload bytes.
    context: caller attributes (age, gender, height, current_weight, ...).
    """
    kind = TaskKind(kind)
    text = text.strip() if isinstance(text, str) else None

    normalized = None
    if image_bytes is not None:
        normalized = normalize_image(image_bytes, max_dimension=settings.max_image_dimension)
    elif image is not None and image.strip():
        normalized = normalize_base64_image(
            image,
            max_bytes=settings.max_upload_bytes,
            max_dimension=settings.max_image_dimension,
        )

    if kind == TaskKind.BODY_ANALYSIS and normalized is None:
        raise ValidationError("An image is required for body analysis")
    if kind == TaskKind.MEAL_ANALYSIS and normalized is None and not text:
        raise ValidationError("An image or an ingredient description is required")

    task = AnalysisTask(
        kind=kind,
        input=TaskInput(
            image=normalized.base64 if normalized else None,
            text=text or None,
            user_id=user_id,
            **_drop_none(context),
        ),
    )
    await store.enqueue(task)
    logger.info(
        "Queued %s task %s%s", kind.value, task.id,
        f" ({normalized.width}x{normalized.height} image)" if normalized else "",
    )
    return task


def _drop_none(context: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in context.items() if v is not None}
