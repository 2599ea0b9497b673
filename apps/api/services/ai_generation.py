"""
Diet plan and workout suggestion generation.

Two sources produce the same payload shape:
- Template generation: deterministic macros and meals from the calorie
  target, one exercise per requested muscle group. Used by the local backend
  and by the remote backend when no OpenAI key is configured.
- OpenAI chat completions returning a JSON object, validated into the same
  pydantic shapes before anything is persisted.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional

from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from schemas import (
    ExerciseSuggestion,
    GenerateDietPlanRequest,
    GenerateWorkoutRequest,
    Meal,
)

logger = logging.getLogger(__name__)

# Share of daily calories from each macro
PROTEIN_SHARE = 0.25
CARBS_SHARE = 0.45
FAT_SHARE = 0.30

KCAL_PER_GRAM_PROTEIN = 4
KCAL_PER_GRAM_CARBS = 4
KCAL_PER_GRAM_FAT = 9

# meal_type -> (name, protein share, carbs share, fat share, prep minutes, instructions)
MEAL_TEMPLATES = (
    ("breakfast", "Balanced Breakfast", 0.25, 0.55, 0.20, 15, "Prepare following the nutrition guidelines"),
    ("lunch", "Nutritious Lunch", 0.30, 0.45, 0.25, 30, "Prepare following the nutrition guidelines"),
    ("dinner", "Light Dinner", 0.35, 0.35, 0.30, 25, "Prepare following the nutrition guidelines"),
    ("snack", "Healthy Snack", 0.20, 0.60, 0.20, 5, "Eat between meals"),
)

EXERCISE_TEMPLATES = {
    "chest": {"name": "Push-up", "equipment": "Bodyweight"},
    "back": {"name": "Row", "equipment": "Dumbbells"},
    "legs": {"name": "Squat", "equipment": "Bodyweight"},
    "arms": {"name": "Biceps Curl", "equipment": "Dumbbells"},
    "core": {"name": "Plank", "equipment": "Bodyweight"},
}

# Portuguese group names sent by older clients
MUSCLE_GROUP_ALIASES = {
    "peito": "chest",
    "costas": "back",
    "pernas": "legs",
    "braços": "arms",
    "bracos": "arms",
    "abdomen": "core",
}

EXERCISE_INSTRUCTIONS = "Move under control and keep correct posture throughout."


def calculate_diet_plan_macros(target_calories: int) -> Dict[str, int]:
    """Daily gram targets for a calorie goal (25% protein, 45% carbs, 30% fat)."""
    return {
        "target_protein": round(target_calories * PROTEIN_SHARE / KCAL_PER_GRAM_PROTEIN),
        "target_carbs": round(target_calories * CARBS_SHARE / KCAL_PER_GRAM_CARBS),
        "target_fat": round(target_calories * FAT_SHARE / KCAL_PER_GRAM_FAT),
    }


def calculate_macro_percentages(protein: float, carbs: float, fat: float) -> Dict[str, int]:
    """Share of calories coming from each macro, in whole percent."""
    protein_kcal = protein * KCAL_PER_GRAM_PROTEIN
    carbs_kcal = carbs * KCAL_PER_GRAM_CARBS
    fat_kcal = fat * KCAL_PER_GRAM_FAT
    total = protein_kcal + carbs_kcal + fat_kcal
    if total <= 0:
        return {"protein": 0, "carbs": 0, "fat": 0}
    return {
        "protein": round(protein_kcal / total * 100),
        "carbs": round(carbs_kcal / total * 100),
        "fat": round(fat_kcal / total * 100),
    }


def template_meals(target_calories: int) -> List[Meal]:
    """Three meals and a snack, each a quarter of the daily calories."""
    per_meal = target_calories // 4
    meals = []
    for meal_type, name, protein, carbs, fat, prep, instructions in MEAL_TEMPLATES:
        meals.append(Meal(
            name=name,
            meal_type=meal_type,
            calories=per_meal,
            protein=math.floor(per_meal * protein / KCAL_PER_GRAM_PROTEIN),
            carbs=math.floor(per_meal * carbs / KCAL_PER_GRAM_CARBS),
            fat=math.floor(per_meal * fat / KCAL_PER_GRAM_FAT),
            ingredients=[],
            instructions=instructions,
            prep_time_minutes=prep,
        ))
    return meals


def diet_plan_content(request: GenerateDietPlanRequest, meals: Optional[List[Meal]] = None) -> Dict[str, Any]:
    """Everything a diet plan record holds except identity and ownership."""
    return {
        "student_id": request.student_id,
        "title": f"Diet Plan {request.duration_days} days",
        "description": f"Personalized plan with {request.target_calories} kcal/day",
        "target_calories": request.target_calories,
        **calculate_diet_plan_macros(request.target_calories),
        "meals": [m.model_dump() for m in (meals if meals is not None else template_meals(request.target_calories))],
        "duration_days": request.duration_days,
        "is_ai_generated": True,
    }


def template_exercises(request: GenerateWorkoutRequest) -> List[ExerciseSuggestion]:
    """One exercise per muscle group; unknown groups fall back to the chest template."""
    light = request.difficulty_level <= 3
    exercises = []
    for group in request.muscle_groups:
        key = MUSCLE_GROUP_ALIASES.get(group.lower(), group.lower())
        template = EXERCISE_TEMPLATES.get(key, EXERCISE_TEMPLATES["chest"])
        exercises.append(ExerciseSuggestion(
            name=template["name"],
            description=f"Strengthening exercise for {group}",
            muscle_groups=[group],
            equipment=template["equipment"],
            sets=3,
            reps="10-12" if light else "12-15",
            rest_seconds=60 if light else 45,
            instructions=EXERCISE_INSTRUCTIONS,
        ))
    return exercises


def workout_suggestion_content(
    request: GenerateWorkoutRequest,
    exercises: Optional[List[ExerciseSuggestion]] = None,
) -> Dict[str, Any]:
    return {
        "title": "Workout " + " + ".join(request.muscle_groups),
        "description": (
            f"Workout focused on {', '.join(request.muscle_groups)} "
            f"lasting {request.duration_minutes} minutes"
        ),
        "difficulty_level": request.difficulty_level,
        "estimated_duration_minutes": request.duration_minutes,
        "muscle_groups": list(request.muscle_groups),
        "exercises": [e.model_dump() for e in (exercises if exercises is not None else template_exercises(request))],
        "is_ai_generated": True,
    }


def estimate_tokens(response: str) -> int:
    """Rough token count (four characters per token)."""
    return len(response) // 4


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

def extract_json_object(text: str) -> Dict[str, Any]:
    """Extract the first JSON object from model output."""
    if not text:
        raise ValueError("Empty model response")

    # Fast path: direct JSON
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in model response")

    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed


DIET_SYSTEM_PROMPT = (
    "You are a sports nutritionist helping a personal trainer. "
    "Build a one-day meal plan that the student repeats for the plan duration. "
    "Return ONLY valid JSON. No markdown, no commentary."
)

WORKOUT_SYSTEM_PROMPT = (
    "You are a strength and conditioning coach helping a personal trainer. "
    "Design a single workout session. "
    "Return ONLY valid JSON. No markdown, no commentary."
)


def diet_plan_prompt(request: GenerateDietPlanRequest) -> str:
    macros = calculate_diet_plan_macros(request.target_calories)
    return f"""Daily calories: {request.target_calories}
Protein: {macros['target_protein']} g, carbs: {macros['target_carbs']} g, fat: {macros['target_fat']} g
Dietary restrictions: {', '.join(request.dietary_restrictions) or 'none'}
Meal preferences: {', '.join(request.meal_preferences) or 'none'}
Health goals: {', '.join(request.health_goals) or 'none'}

Return a JSON object:
{{
  "meals": [
    {{
      "name": string,
      "meal_type": "breakfast" | "lunch" | "dinner" | "snack",
      "calories": integer,
      "protein": integer,
      "carbs": integer,
      "fat": integer,
      "ingredients": [{{"name": string, "amount": number, "unit": string}}],
      "instructions": string,
      "prep_time_minutes": integer
    }}
  ]
}}

Rules:
- Meal calories should add up to roughly the daily calories.
- Respect every dietary restriction."""


def workout_prompt(request: GenerateWorkoutRequest) -> str:
    return f"""Muscle groups: {', '.join(request.muscle_groups)}
Difficulty (1-5): {request.difficulty_level}
Duration: {request.duration_minutes} minutes
Equipment available: {', '.join(request.equipment_available) or 'bodyweight only'}
Goals: {', '.join(request.fitness_goals) or 'general fitness'}

Return a JSON object:
{{
  "exercises": [
    {{
      "name": string,
      "description": string,
      "muscle_groups": [string],
      "equipment": string,
      "sets": integer,
      "reps": string,
      "rest_seconds": integer,
      "instructions": string
    }}
  ]
}}

Rules:
- Cover every requested muscle group.
- Only use the equipment listed."""


def parse_meals(payload: Dict[str, Any]) -> List[Meal]:
    raw = payload.get("meals")
    if not isinstance(raw, list) or not raw:
        raise ValueError("Model response has no meals")
    try:
        return [Meal.model_validate(m) for m in raw]
    except PydanticValidationError as e:
        raise ValueError(f"Model returned malformed meals: {e.error_count()} errors") from e


def parse_exercises(payload: Dict[str, Any]) -> List[ExerciseSuggestion]:
    raw = payload.get("exercises")
    if not isinstance(raw, list) or not raw:
        raise ValueError("Model response has no exercises")
    try:
        return [ExerciseSuggestion.model_validate(e) for e in raw]
    except PydanticValidationError as e:
        raise ValueError(f"Model returned malformed exercises: {e.error_count()} errors") from e


class OpenAIGenerator:
    """Thin wrapper over the chat completions endpoint returning parsed JSON."""

    def __init__(self, client, model: Optional[str] = None):
        self.client = client
        self.model = model or settings.OPENAI_MODEL

    def complete_json(self, system: str, user: str) -> Dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            response_format={"type": "json_object"},
            max_tokens=settings.OPENAI_MAX_TOKENS,
            temperature=settings.OPENAI_TEMPERATURE,
        )
        content = response.choices[0].message.content or ""
        return extract_json_object(content)

    def diet_meals(self, request: GenerateDietPlanRequest) -> List[Meal]:
        return parse_meals(self.complete_json(DIET_SYSTEM_PROMPT, diet_plan_prompt(request)))

    def workout_exercises(self, request: GenerateWorkoutRequest) -> List[ExerciseSuggestion]:
        return parse_exercises(self.complete_json(WORKOUT_SYSTEM_PROMPT, workout_prompt(request)))


def build_openai_generator() -> Optional[OpenAIGenerator]:
    """An OpenAI-backed generator, or None when no API key is configured."""
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIGenerator(OpenAI(api_key=settings.OPENAI_API_KEY))
