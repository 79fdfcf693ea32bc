"""Prompt builders for both stages of each task kind.

Stage two prompts are built from the sanitized stage one record, never from
the raw model text.
"""

from app.jobs.models import TaskInput
from app.pipeline.schemas import BodyAnalysis, MealAnalysis

_JSON_ONLY = "Respond ONLY with valid JSON, no markdown and no extra explanations."


def _or_unknown(value) -> str:
    return "not specified" if value in (None, "", []) else str(value)


def body_analysis_prompt(context: TaskInput) -> str:
    goals = ", ".join(context.goals) if context.goals else None
    return f"""Act as a sports nutritionist with 15 years of experience in body composition assessment.

USER INFORMATION:
- Current weight: {_or_unknown(context.current_weight)} kg
- Target weight: {_or_unknown(context.target_weight)} kg
- Height: {_or_unknown(context.height)} cm
- Age: {_or_unknown(context.age)}
- Gender: {_or_unknown(context.gender)}
- Activity level: {_or_unknown(context.activity_level)}
- Goals: {_or_unknown(goals)}

INSTRUCTIONS:
1. Assess the body image with professional judgement
2. Determine the body type (ectomorph, mesomorph, endomorph)
3. Evaluate body composition and muscle development
4. Give realistic estimated measurements

{_JSON_ONLY}

{{
  "bodyType": "ectomorph|mesomorph|endomorph",
  "measurements": {{
    "bodyFatPercentage": number,
    "muscleDefinition": "low|moderate|high|very_high",
    "posture": "needs_attention|fair|good|excellent",
    "symmetry": "needs_attention|fair|good|excellent",
    "overallFitness": "beginner|intermediate|advanced|athlete"
  }},
  "bodyComposition": {{
    "estimatedBMI": number,
    "bodyType": "same as above",
    "muscleMass": "low|medium|high",
    "bodyFat": "low|medium|high",
    "metabolism": "slow|medium|fast",
    "boneDensity": "light|medium|heavy",
    "muscleGroups": [
      {{"name": "torso", "development": "developing|good|excellent", "recommendations": ["..."]}},
      {{"name": "arms", "development": "developing|good|excellent", "recommendations": ["..."]}},
      {{"name": "legs", "development": "developing|good|excellent", "recommendations": ["..."]}}
    ]
  }},
  "progress": {{
    "strengths": ["..."],
    "areasToImprove": ["..."],
    "generalAdvice": "..."
  }},
  "confidence": number between 0 and 1,
  "insights": ["..."]
}}"""


def nutrition_prompt(analysis: BodyAnalysis) -> str:
    m = analysis.measurements
    c = analysis.body_composition
    return f"""As an expert sports nutritionist, write specific nutrition recommendations for:

BODY ANALYSIS:
- Body type: {analysis.body_type}
- Body fat: {m.body_fat_percentage}%
- Muscle mass: {c.muscle_mass}
- Metabolism: {c.metabolism}
- Fitness level: {m.overall_fitness}
- Weight: {m.weight} kg, height: {m.height} cm, age: {m.age}, gender: {m.gender}
- Activity level: {m.activity_level}

{_JSON_ONLY}

{{
  "nutrition": ["specific recommendation", "..."],
  "priority": "cardio|strength|flexibility|balance|general_fitness",
  "dailyCalories": number,
  "macroSplit": {{"protein": percent, "carbs": percent, "fat": percent}},
  "supplements": ["..."],
  "restrictions": ["..."],
  "goals": ["..."]
}}"""


_MEAL_SCHEMA = """{
  "foods": [
    {
      "name": "food name",
      "quantity": "estimated portion",
      "calories": number,
      "confidence": number between 0 and 1,
      "macronutrients": {"protein": g, "carbs": g, "fat": g, "fiber": g, "sugar": g, "sodium": mg},
      "category": "protein|carbs|vegetables|fruits|dairy|fats|beverages|sweets|other"
    }
  ],
  "mealType": "breakfast|lunch|dinner|snack|other",
  "confidence": number between 0 and 1,
  "insights": ["..."]
}"""


def meal_image_prompt(context: TaskInput) -> str:
    return f"""You are a nutritionist. Identify every food in the photo and estimate portion, calories and macronutrients for each.

Meal type: {_or_unknown(context.meal_type)}

{_JSON_ONLY}

{_MEAL_SCHEMA}"""


def meal_text_prompt(context: TaskInput) -> str:
    return f"""You are a nutritionist. Estimate calories and macronutrients for this meal description.

Ingredients: {context.text}
Servings: {context.servings:g}
Meal type: {_or_unknown(context.meal_type)}

Report quantities for the given number of servings.

{_JSON_ONLY}

{_MEAL_SCHEMA}"""


def meal_feedback_prompt(analysis: MealAnalysis) -> str:
    foods = "\n".join(
        f"- {f.name} ({f.quantity}): {f.calories:g} kcal, "
        f"P {f.macronutrients.protein:g}g / C {f.macronutrients.carbs:g}g / F {f.macronutrients.fat:g}g"
        for f in analysis.foods
    )
    t = analysis.total_macronutrients
    return f"""As a nutritionist, evaluate this {analysis.meal_type} and suggest improvements.

FOODS:
{foods}

TOTAL: {analysis.total_calories:g} kcal, protein {t.protein:g}g, carbs {t.carbs:g}g, fat {t.fat:g}g, fiber {t.fiber:g}g, sodium {t.sodium:g}mg

{_JSON_ONLY}

{{
  "recommendations": ["..."],
  "warnings": ["..."],
  "healthScore": number from 0 to 10,
  "balance": "balanced|high_protein|high_carb|high_fat|low_protein"
}}"""
