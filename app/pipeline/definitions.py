"""Per-kind wiring of prompts, sanitizers and report assembly."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from app.errors import ParseError
from app.jobs.models import TaskInput, TaskKind
from app.pipeline import prompts, sanitizer
from app.pipeline.schemas import MealAnalysis


@dataclass(frozen=True)
class PipelineDefinition:
    kind: TaskKind
    stage_one_prompt: Callable[[TaskInput], str]
    sanitize_stage_one: Callable[[Dict[str, Any], TaskInput], BaseModel]
    stage_two_prompt: Callable[[Any], str]
    sanitize_stage_two: Callable[[Dict[str, Any]], BaseModel]
    assemble: Callable[[Any, Any], BaseModel]
    # Raises ParseError when a sanitized stage one record is still unusable.
    check_stage_one: Optional[Callable[[Any], None]] = None

    def images_for(self, context: TaskInput) -> Optional[List[str]]:
        return [context.image] if context.image else None


def _meal_stage_one_prompt(context: TaskInput) -> str:
    if context.image:
        return prompts.meal_image_prompt(context)
    return prompts.meal_text_prompt(context)


def _require_foods(analysis: MealAnalysis) -> None:
    if not analysis.foods:
        raise ParseError("No food items recognised in the meal", stage="analysis")


_DEFINITIONS = {
    TaskKind.BODY_ANALYSIS: PipelineDefinition(
        kind=TaskKind.BODY_ANALYSIS,
        stage_one_prompt=prompts.body_analysis_prompt,
        sanitize_stage_one=sanitizer.sanitize_body_analysis,
        stage_two_prompt=prompts.nutrition_prompt,
        sanitize_stage_two=sanitizer.sanitize_nutrition,
        assemble=sanitizer.build_body_report,
    ),
    TaskKind.MEAL_ANALYSIS: PipelineDefinition(
        kind=TaskKind.MEAL_ANALYSIS,
        stage_one_prompt=_meal_stage_one_prompt,
        sanitize_stage_one=sanitizer.sanitize_meal_analysis,
        stage_two_prompt=prompts.meal_feedback_prompt,
        sanitize_stage_two=sanitizer.sanitize_meal_recommendations,
        assemble=sanitizer.build_meal_report,
        check_stage_one=_require_foods,
    ),
}


def get_definition(kind: TaskKind) -> PipelineDefinition:
    return _DEFINITIONS[TaskKind(kind)]
