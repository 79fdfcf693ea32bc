"""Image payload decoding and normalization with Pillow.

Submitted images arrive as base64 (optionally a ``data:image/...;base64,``
data URL) or as raw upload bytes. They are verified, downscaled so the longest
side is at most ``max_dimension``, and re-encoded as JPEG base64 before being
stored on the task. Anything Pillow cannot open is a ``ValidationError``.
"""

import base64
import binascii
import io
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from app.errors import ValidationError

_DATA_URL_RE = re.compile(r"^data:image/[^;]+;base64,", re.IGNORECASE)


@dataclass(frozen=True)
class NormalizedImage:
    """Image ready to be stored on a task and sent to a vision model."""
    base64: str
    width: int
    height: int
    source_format: str


def strip_data_url(payload: str) -> str:
    return _DATA_URL_RE.sub("", payload.strip(), count=1)


def decode_base64_image(payload: str, max_bytes: int) -> bytes:
    if not payload or not payload.strip():
        raise ValidationError("Image payload is empty")
    body = "".join(strip_data_url(payload).split())
    # A base64 string is ~4/3 the size of the bytes it carries
    if len(body) * 3 // 4 > max_bytes:
        raise ValidationError(f"Image too large (max {max_bytes // (1024 * 1024)} MB)")
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Image payload is not valid base64") from exc


def normalize_image(raw: bytes, max_dimension: int = 1024, quality: int = 90) -> NormalizedImage:
    if not raw:
        raise ValidationError("Image payload is empty")
    try:
        with Image.open(io.BytesIO(raw)) as probe:
            probe.verify()
        # verify() leaves the image unusable; reopen for the actual decode
        img = Image.open(io.BytesIO(raw))
        source_format = img.format or "unknown"
        img = img.convert("RGB")
    except Image.DecompressionBombError as exc:
        raise ValidationError("Image dimensions too large") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError("Payload is not a readable image") from exc

    if max(img.size) > max_dimension:
        img.thumbnail((max_dimension, max_dimension), Image.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    return NormalizedImage(
        base64=base64.b64encode(buf.getvalue()).decode("ascii"),
        width=img.width,
        height=img.height,
        source_format=source_format,
    )


def normalize_base64_image(payload: str, max_bytes: int, max_dimension: int) -> NormalizedImage:
    return normalize_image(decode_base64_image(payload, max_bytes), max_dimension=max_dimension)
