"""Turns untrusted parsed model output into fully-populated typed records.

Every function here is pure: same input, same output, no I/O. Rules applied
field by field:

* numbers: non-numeric / non-finite values take the documented default, any
  other value is clamped into its closed range;
* enumerations: values outside the allowed set take the documented default;
* lists: non-list values take the documented default, lists are cleaned and
  truncated to their maximum length;
* aggregate totals are recomputed from sanitized components.

Sanitizing an already-sanitized record (dumped by alias) returns an equal
record.
"""

import math
import re
from typing import Any, Dict, List, Optional, Sequence

from app.jobs.models import TaskInput
from app.pipeline.schemas import (
    BodyAnalysis,
    BodyAnalysisReport,
    BodyComposition,
    BodyMeasurements,
    FoodItem,
    MacroSplit,
    Macronutrients,
    MealAnalysis,
    MealAnalysisReport,
    MealRecommendations,
    MuscleGroup,
    NutritionRecommendations,
    ProgressNotes,
)

DISCLAIMER = (
    "Estimates based on a visual assessment by an AI model. They are not a "
    "medical evaluation; consult a qualified professional for precise measurements."
)

MAX_TEXT_ITEM = 200

# Enumerations
MUSCLE_DEFINITION = ("low", "moderate", "high", "very_high")
RATING = ("needs_attention", "fair", "good", "excellent")
FITNESS_LEVEL = ("beginner", "intermediate", "advanced", "athlete")
GENDER = ("male", "female", "other")
ACTIVITY_LEVEL = ("sedentary", "light", "moderate", "active", "very_active")
BODY_TYPE = ("ectomorph", "mesomorph", "endomorph")
LOW_MEDIUM_HIGH = ("low", "medium", "high")
METABOLISM = ("slow", "medium", "fast")
BONE_DENSITY = ("light", "medium", "heavy")
MUSCLE_DEVELOPMENT = (
    "underdeveloped", "developing", "well_developed", "good", "excellent", "highly_developed",
)
NUTRITION_PRIORITY = ("cardio", "strength", "flexibility", "balance", "general_fitness")
FOOD_CATEGORY = (
    "protein", "carbs", "vegetables", "fruits", "dairy", "fats", "beverages", "sweets", "other",
)
MEAL_TYPE = ("breakfast", "lunch", "dinner", "snack", "other")
MEAL_BALANCE = ("balanced", "high_protein", "high_carb", "high_fat", "low_protein")

DEFAULT_MACRO_SPLIT = {"protein": 30, "carbs": 40, "fat": 30}
MACRO_SUM_TOLERANCE = 5

# (lo, hi) per macronutrient; grams except sodium (mg)
MACRO_RANGES = {
    "protein": (0.0, 300.0),
    "carbs": (0.0, 500.0),
    "fat": (0.0, 300.0),
    "fiber": (0.0, 100.0),
    "sugar": (0.0, 300.0),
    "sodium": (0.0, 10000.0),
}

DEFAULT_MUSCLE_GROUPS = (
    {
        "name": "torso",
        "development": "developing",
        "recommendations": [
            "Add compound movements such as push-ups and dips",
            "Train the core with planks and stability work",
        ],
    },
    {
        "name": "arms",
        "development": "good",
        "recommendations": [
            "Keep the current arm training routine",
            "Include pulling exercises for muscular balance",
        ],
    },
    {
        "name": "legs",
        "development": "good",
        "recommendations": [
            "Keep squats and other leg compounds in the plan",
            "Add mobility and flexibility work",
        ],
    },
)
DEFAULT_STRENGTHS = ("Commitment to regular exercise",)
DEFAULT_AREAS_TO_IMPROVE = ("Routine consistency",)
DEFAULT_GENERAL_ADVICE = "Stay consistent and adjust based on your progress."
DEFAULT_INSIGHTS = (
    "Keep up the current routine",
    "Consider adjusting nutrition to match your goals",
)
DEFAULT_GOALS = ("improve_health",)

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")


# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> Optional[float]:
    """Finite float from a number or numeric-looking string ("18.5", "18 %"), else None."""
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            num = float(value)
        elif isinstance(value, str):
            # "2,400 kcal" -> 2400
            match = _LEADING_NUMBER.match(value.replace(",", ""))
            if not match:
                return None
            num = float(match.group(1))
        else:
            return None
    except OverflowError:
        return None
    return num if math.isfinite(num) else None


def clamp_number(
    value: Any,
    lo: float,
    hi: float,
    default: float,
    digits: Optional[int] = 1,
) -> float:
    num = coerce_number(value)
    if num is None:
        num = default
    num = min(max(num, lo), hi)
    return round(num, digits) if digits is not None else num


def clamp_int(value: Any, lo: int, hi: int, default: int) -> int:
    return int(round(clamp_number(value, lo, hi, default, digits=None)))


def validate_enum(value: Any, allowed: Sequence[str], default: str) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
        if normalized in allowed:
            return normalized
    return default


def clean_text(value: Any, max_len: int, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()[:max_len]
    return default


def clean_list(
    value: Any,
    max_items: int,
    default: Sequence[str] = (),
    max_len: int = MAX_TEXT_ITEM,
) -> List[str]:
    if not isinstance(value, list):
        return list(default)
    cleaned = [
        item.strip()[:max_len]
        for item in value
        if isinstance(item, str) and item.strip()
    ]
    return cleaned[:max_items]


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _confidence(data: Dict[str, Any]) -> float:
    return clamp_number(data.get("confidence"), 0.1, 1.0, 0.7, digits=2)


# ---------------------------------------------------------------------------
# Body analysis
# ---------------------------------------------------------------------------

def sanitize_body_analysis(data: Dict[str, Any], context: TaskInput) -> BodyAnalysis:
    """Stage one (body image) output to a validated ``BodyAnalysis``.

    Height, weight, age, gender and activity level come from the caller's
    context, not the model; the model only judges what it can see.
    """
    if not isinstance(data, dict):
        data = {}
    raw_measurements = _section(data, "measurements")
    raw_composition = _section(data, "bodyComposition")

    measurements = BodyMeasurements(
        body_fat_percentage=clamp_number(raw_measurements.get("bodyFatPercentage"), 5, 50, 20),
        muscle_definition=validate_enum(
            raw_measurements.get("muscleDefinition"), MUSCLE_DEFINITION, "moderate"
        ),
        posture=validate_enum(raw_measurements.get("posture"), RATING, "fair"),
        symmetry=validate_enum(raw_measurements.get("symmetry"), RATING, "fair"),
        overall_fitness=validate_enum(
            raw_measurements.get("overallFitness"), FITNESS_LEVEL, "intermediate"
        ),
        height=clamp_number(context.height, 100, 250, 170),
        weight=clamp_number(context.current_weight, 30, 300, 70),
        age=clamp_int(context.age, 13, 100, 25),
        gender=validate_enum(context.gender, GENDER, "male"),
        activity_level=validate_enum(context.activity_level, ACTIVITY_LEVEL, "moderate"),
    )

    computed_bmi = measurements.weight / (measurements.height / 100) ** 2
    body_type = validate_enum(
        raw_composition.get("bodyType") or data.get("bodyType"), BODY_TYPE, "mesomorph"
    )
    composition = BodyComposition(
        estimated_bmi=clamp_number(
            raw_composition.get("estimatedBMI"), 15, 40, round(computed_bmi, 1)
        ),
        body_type=body_type,
        muscle_mass=validate_enum(raw_composition.get("muscleMass"), LOW_MEDIUM_HIGH, "medium"),
        body_fat=validate_enum(raw_composition.get("bodyFat"), LOW_MEDIUM_HIGH, "medium"),
        metabolism=validate_enum(raw_composition.get("metabolism"), METABOLISM, "medium"),
        bone_density=validate_enum(raw_composition.get("boneDensity"), BONE_DENSITY, "medium"),
        muscle_groups=_muscle_groups(raw_composition.get("muscleGroups")),
    )

    raw_progress = _section(data, "progress")
    progress = ProgressNotes(
        strengths=clean_list(raw_progress.get("strengths"), 5, DEFAULT_STRENGTHS),
        areas_to_improve=clean_list(
            raw_progress.get("areasToImprove"), 5, DEFAULT_AREAS_TO_IMPROVE
        ),
        general_advice=clean_text(raw_progress.get("generalAdvice"), 500, DEFAULT_GENERAL_ADVICE),
    )

    return BodyAnalysis(
        body_type=body_type,
        measurements=measurements,
        body_composition=composition,
        progress=progress,
        confidence=_confidence(data),
        insights=clean_list(data.get("insights"), 5, DEFAULT_INSIGHTS),
    )


def _muscle_groups(value: Any) -> List[MuscleGroup]:
    groups = []
    if isinstance(value, list):
        for item in value:
            if not isinstance(item, dict):
                continue
            name = clean_text(item.get("name"), 40, "")
            if not name:
                continue
            groups.append(MuscleGroup(
                name=name,
                development=validate_enum(item.get("development"), MUSCLE_DEVELOPMENT, "developing"),
                recommendations=clean_list(item.get("recommendations"), 3),
            ))
    if not groups:
        return [MuscleGroup(**g) for g in DEFAULT_MUSCLE_GROUPS]
    return groups[:6]


def sanitize_nutrition(data: Dict[str, Any]) -> NutritionRecommendations:
    """Stage two (body) output to validated ``NutritionRecommendations``."""
    if not isinstance(data, dict):
        data = {}
    return NutritionRecommendations(
        nutrition=clean_list(data.get("nutrition"), 5),
        priority=validate_enum(data.get("priority"), NUTRITION_PRIORITY, "general_fitness"),
        daily_calories=clamp_int(data.get("dailyCalories"), 1200, 4500, 2000),
        macro_split=_macro_split(_section(data, "macroSplit")),
        supplements=clean_list(data.get("supplements"), 5),
        restrictions=clean_list(data.get("restrictions"), 5),
        goals=clean_list(data.get("goals"), 5, DEFAULT_GOALS),
    )


def _macro_split(raw: Dict[str, Any]) -> MacroSplit:
    split = {
        "protein": clamp_int(raw.get("protein"), 10, 50, DEFAULT_MACRO_SPLIT["protein"]),
        "carbs": clamp_int(raw.get("carbs"), 10, 65, DEFAULT_MACRO_SPLIT["carbs"]),
        "fat": clamp_int(raw.get("fat"), 15, 45, DEFAULT_MACRO_SPLIT["fat"]),
    }
    if abs(sum(split.values()) - 100) > MACRO_SUM_TOLERANCE:
        split = dict(DEFAULT_MACRO_SPLIT)
    return MacroSplit(**split)


def build_body_report(
    analysis: BodyAnalysis,
    recommendations: NutritionRecommendations,
) -> BodyAnalysisReport:
    return BodyAnalysisReport(
        **analysis.model_dump(),
        recommendations=recommendations,
        disclaimer=DISCLAIMER,
    )


# ---------------------------------------------------------------------------
# Meal analysis
# ---------------------------------------------------------------------------

def sanitize_meal_analysis(data: Dict[str, Any], context: TaskInput) -> MealAnalysis:
    """Stage one (meal) output to a validated ``MealAnalysis``.

    Totals reported by the model are ignored and recomputed from the foods.
    The caller's meal type wins over the model's guess.
    """
    if not isinstance(data, dict):
        data = {}
    foods = []
    raw_foods = data.get("foods")
    if isinstance(raw_foods, list):
        for item in raw_foods:
            food = _food_item(item)
            if food is not None:
                foods.append(food)
    foods = foods[:15]

    totals = {
        key: round(sum(getattr(f.macronutrients, key) for f in foods), 1)
        for key in MACRO_RANGES
    }
    meal_type = validate_enum(
        context.meal_type,
        MEAL_TYPE,
        validate_enum(data.get("mealType"), MEAL_TYPE, "other"),
    )

    return MealAnalysis(
        foods=foods,
        total_calories=round(sum(f.calories for f in foods), 1),
        total_macronutrients=Macronutrients(**totals),
        meal_type=meal_type,
        confidence=_confidence(data),
        insights=clean_list(data.get("insights"), 5, ()),
    )


def _food_item(item: Any) -> Optional[FoodItem]:
    if not isinstance(item, dict):
        return None
    name = clean_text(item.get("name"), 80, "")
    if not name:
        return None
    raw_macros = _section(item, "macronutrients")
    macros = {
        key: clamp_number(raw_macros.get(key), lo, hi, 0)
        for key, (lo, hi) in MACRO_RANGES.items()
    }
    return FoodItem(
        name=name,
        quantity=clean_text(item.get("quantity"), 60, "1 serving"),
        calories=clamp_number(item.get("calories"), 0, 3000, 0),
        confidence=clamp_number(item.get("confidence"), 0, 1, 0.5, digits=2),
        macronutrients=Macronutrients(**macros),
        category=validate_enum(item.get("category"), FOOD_CATEGORY, "other"),
    )


def sanitize_meal_recommendations(data: Dict[str, Any]) -> MealRecommendations:
    if not isinstance(data, dict):
        data = {}
    return MealRecommendations(
        recommendations=clean_list(data.get("recommendations"), 5),
        warnings=clean_list(data.get("warnings"), 3),
        health_score=clamp_number(data.get("healthScore"), 0, 10, 5),
        balance=validate_enum(data.get("balance"), MEAL_BALANCE, "balanced"),
    )


def build_meal_report(
    analysis: MealAnalysis,
    feedback: MealRecommendations,
) -> MealAnalysisReport:
    return MealAnalysisReport(
        **analysis.model_dump(),
        feedback=feedback,
        disclaimer=DISCLAIMER,
    )
