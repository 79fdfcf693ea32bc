"""Typed records produced by the sanitizer.

Field names serialize in camelCase (``by_alias=True``), which is also the shape
the prompts ask the models to answer in.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Body analysis
# ---------------------------------------------------------------------------

class BodyMeasurements(CamelModel):
    body_fat_percentage: float
    muscle_definition: str
    posture: str
    symmetry: str
    overall_fitness: str
    height: float
    weight: float
    age: int
    gender: str
    activity_level: str


class MuscleGroup(CamelModel):
    name: str
    development: str
    recommendations: List[str]


class BodyComposition(CamelModel):
    estimated_bmi: float = Field(alias="estimatedBMI")
    body_type: str
    muscle_mass: str
    body_fat: str
    metabolism: str
    bone_density: str
    muscle_groups: List[MuscleGroup]


class ProgressNotes(CamelModel):
    strengths: List[str]
    areas_to_improve: List[str]
    general_advice: str


class BodyAnalysis(CamelModel):
    """Stage one result for body images."""
    body_type: str
    measurements: BodyMeasurements
    body_composition: BodyComposition
    progress: ProgressNotes
    confidence: float
    insights: List[str]


class MacroSplit(CamelModel):
    protein: int
    carbs: int
    fat: int


class NutritionRecommendations(CamelModel):
    """Stage two result for body analyses."""
    nutrition: List[str]
    priority: str
    daily_calories: int
    macro_split: MacroSplit
    supplements: List[str]
    restrictions: List[str]
    goals: List[str]


class BodyAnalysisReport(BodyAnalysis):
    recommendations: NutritionRecommendations
    disclaimer: str


# ---------------------------------------------------------------------------
# Meal analysis
# ---------------------------------------------------------------------------

class Macronutrients(CamelModel):
    protein: float
    carbs: float
    fat: float
    fiber: float
    sugar: float
    sodium: float


class FoodItem(CamelModel):
    name: str
    quantity: str
    calories: float
    confidence: float
    macronutrients: Macronutrients
    category: str


class MealAnalysis(CamelModel):
    """Stage one result for meals (photo or manual description)."""
    foods: List[FoodItem]
    total_calories: float
    total_macronutrients: Macronutrients
    meal_type: str
    confidence: float
    insights: List[str]


class MealRecommendations(CamelModel):
    """Stage two result for meals."""
    recommendations: List[str]
    warnings: List[str]
    health_score: float
    balance: str


class MealAnalysisReport(MealAnalysis):
    feedback: MealRecommendations
    disclaimer: str
