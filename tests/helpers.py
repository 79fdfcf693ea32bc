import asyncio
import base64
import io
import json
from typing import List, Optional

from PIL import Image

from app.clients.base import StageClient
from app.clients.factory import StageClients
from app.jobs.memory_store import InMemoryTaskStore
from app.jobs.models import AnalysisTask, TaskInput, TaskKind
from app.pipeline.runner import AnalysisPipeline


class ScriptedClient(StageClient):
    """Stage client that plays back canned replies; exceptions in the script are raised.

    The last entry repeats once the script runs out.
    """

    def __init__(self, name: str, replies):
        self.name = name
        self.replies = list(replies)
        self.calls = []

    async def generate(self, prompt: str, images: Optional[List[str]] = None) -> str:
        self.calls.append({"prompt": prompt, "images": images})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class HangingClient(StageClient):
    """Never answers; used for deadline and shutdown tests."""

    def __init__(self, name: str):
        self.name = name
        self.calls = 0

    async def generate(self, prompt: str, images: Optional[List[str]] = None) -> str:
        self.calls += 1
        await asyncio.sleep(3600)
        return ""


class RecordingStore(InMemoryTaskStore):
    def __init__(self):
        super().__init__()
        self.progress_updates = []

    async def update_progress(self, task_id: str, progress: int) -> None:
        self.progress_updates.append(progress)
        await super().update_progress(task_id, progress)


BODY_REPLY = {
    "bodyType": "mesomorph",
    "measurements": {
        "bodyFatPercentage": 18.5,
        "muscleDefinition": "high",
        "posture": "good",
        "symmetry": "good",
        "overallFitness": "advanced",
    },
    "bodyComposition": {
        "estimatedBMI": 24.7,
        "bodyType": "mesomorph",
        "muscleMass": "high",
        "bodyFat": "low",
        "metabolism": "fast",
        "boneDensity": "medium",
        "muscleGroups": [
            {"name": "chest", "development": "good", "recommendations": ["Incline press"]},
            {"name": "legs", "development": "developing", "recommendations": ["Squats"]},
        ],
    },
    "progress": {
        "strengths": ["Broad shoulders"],
        "areasToImprove": ["Leg volume"],
        "generalAdvice": "Keep training legs twice a week.",
    },
    "confidence": 0.8,
    "insights": ["Good upper body development"],
}

NUTRITION_REPLY = {
    "nutrition": ["Eat 2g of protein per kg"],
    "priority": "strength",
    "dailyCalories": 2600,
    "macroSplit": {"protein": 35, "carbs": 40, "fat": 25},
    "supplements": ["Creatine"],
    "restrictions": [],
    "goals": ["build_muscle"],
}

MEAL_REPLY = {
    "foods": [
        {
            "name": "Grilled chicken",
            "quantity": "150 g",
            "calories": 250,
            "confidence": 0.9,
            "macronutrients": {"protein": 40, "carbs": 0, "fat": 8, "fiber": 0, "sugar": 0, "sodium": 400},
            "category": "protein",
        },
        {
            "name": "Rice",
            "quantity": "1 cup",
            "calories": 200,
            "confidence": 0.8,
            "macronutrients": {"protein": 4, "carbs": 45, "fat": 0.5, "fiber": 1, "sugar": 0, "sodium": 5},
            "category": "carbs",
        },
    ],
    "totalCalories": 450,
    "mealType": "lunch",
    "confidence": 0.85,
    "insights": ["High in protein"],
}

MEAL_FEEDBACK_REPLY = {
    "recommendations": ["Add vegetables"],
    "warnings": [],
    "healthScore": 7.5,
    "balance": "high_protein",
}


def as_reply(data, fenced: bool = False) -> str:
    text = json.dumps(data)
    return f"```json\n{text}\n```" if fenced else text


def image_bytes(size=(64, 48), fmt="PNG", color=(200, 120, 80)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def image_base64(size=(64, 48), fmt="PNG") -> str:
    return base64.b64encode(image_bytes(size, fmt)).decode("ascii")


def make_pipeline(analysis, recommendation, **kwargs) -> AnalysisPipeline:
    options = {
        "stage_one_timeout": 5.0,
        "stage_two_timeout": 5.0,
        "max_attempts": 2,
        "retry_min_wait": 0,
        "retry_max_wait": 0,
    }
    options.update(kwargs)
    return AnalysisPipeline(StageClients(analysis=analysis, recommendation=recommendation), **options)


def body_task(**context) -> AnalysisTask:
    values = {"image": image_base64(), "height": 180, "current_weight": 80, "age": 30, "gender": "male"}
    values.update(context)
    return AnalysisTask(kind=TaskKind.BODY_ANALYSIS, input=TaskInput(**values))


def meal_task(**context) -> AnalysisTask:
    values = {"text": "150 g grilled chicken with a cup of rice", "meal_type": "lunch"}
    values.update(context)
    return AnalysisTask(kind=TaskKind.MEAL_ANALYSIS, input=TaskInput(**values))


async def claim(store, task: AnalysisTask) -> AnalysisTask:
    await store.enqueue(task)
    claimed = await store.dequeue("test-worker", timeout=1.0)
    assert claimed is not None and claimed.id == task.id
    return claimed


