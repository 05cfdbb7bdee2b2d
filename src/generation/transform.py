"""Map validated generation results into domain shapes.

Pure functions only: no I/O, no retries. Ids are left empty for the
repository to assign. Also holds the week arithmetic used to place meals
on days, and the reader that turns stored recipe rows back into Recipe models.
"""

import datetime as dt
import json
import re
from typing import Any, Mapping, Optional

from src.models.meal_plan import MEAL_TYPES, DayMeals, Meal, NutritionData, Recipe, WeekMealPlan
from src.models.models import GeneratedMeal, WeeklyPlan
from src.prompts.prompts import DAY_NAMES


class WeekUtils:
    """Week navigation helpers. Weeks run Monday to Sunday."""

    @staticmethod
    def get_week_start(day: dt.date) -> dt.date:
        """Monday of the week containing `day`."""
        if isinstance(day, dt.datetime):
            day = day.date()
        return day - dt.timedelta(days=day.weekday())

    @classmethod
    def get_week_end(cls, day: dt.date) -> dt.date:
        """Sunday of the week containing `day`."""
        return cls.get_week_start(day) + dt.timedelta(days=6)

    @classmethod
    def get_week_days(cls, week_start: dt.date) -> list[DayMeals]:
        """Seven empty DayMeals, Monday (1) through Sunday (7)."""
        start = cls.get_week_start(week_start)
        return [
            DayMeals(day=name, day_of_week=index + 1, date=start + dt.timedelta(days=index))
            for index, name in enumerate(DAY_NAMES)
        ]

    @classmethod
    def get_previous_week(cls, week_start: dt.date) -> dt.date:
        return cls.get_week_start(week_start) - dt.timedelta(days=7)

    @classmethod
    def get_next_week(cls, week_start: dt.date) -> dt.date:
        return cls.get_week_start(week_start) + dt.timedelta(days=7)

    @classmethod
    def is_current_week(cls, day: dt.date, today: Optional[dt.date] = None) -> bool:
        today = today or dt.date.today()
        return cls.get_week_start(today) <= day <= cls.get_week_end(today)

    @classmethod
    def format_week_range(cls, week_start: dt.date) -> str:
        """Display range, e.g. "Nov 3 - Nov 9, 2025" or "Dec 29, 2025 - Jan 4, 2026"."""
        start = cls.get_week_start(week_start)
        end = cls.get_week_end(start)
        end_str = f"{end:%b} {end.day}, {end.year}"
        if start.year == end.year:
            return f"{start:%b} {start.day} - {end_str}"
        return f"{start:%b} {start.day}, {start.year} - {end_str}"


def generated_meal_to_recipe(meal: GeneratedMeal) -> Recipe:
    """Turn one validated meal into an unsaved Recipe."""
    return Recipe(
        title=meal.title,
        description=meal.description,
        ingredients=list(meal.ingredients),
        instructions=list(meal.instructions),
        nutrition=NutritionData(**meal.nutrition.model_dump()),
        prep_time_minutes=meal.prep_time_minutes,
        cook_time_minutes=meal.cook_time_minutes,
        servings=meal.servings,
    )


def weekly_plan_to_week_meal_plan(plan: WeeklyPlan, week_start: dt.date) -> WeekMealPlan:
    """Place every generated meal on its (day, meal type) slot.

    Day names are matched case-insensitively. Days or slots the model left
    out stay empty, and unknown day names are ignored.
    """
    by_day = {name.strip().lower(): daily for name, daily in plan.meals.items()}
    days = WeekUtils.get_week_days(week_start)

    for day in days:
        daily = by_day.get(day.day.lower())
        if daily is None:
            continue
        for meal_type in MEAL_TYPES:
            generated = getattr(daily, meal_type)
            if generated is not None:
                setattr(
                    day,
                    meal_type,
                    Meal(day_of_week=day.day_of_week, type=meal_type, recipe=generated_meal_to_recipe(generated)),
                )

    start = WeekUtils.get_week_start(week_start)
    return WeekMealPlan(week_start=start, week_end=WeekUtils.get_week_end(start), days=days)


def parse_json_field(value: Any) -> Any:
    """Decode a JSON-encoded column. Non-strings pass through; bad JSON gives None."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = re.sub(r"[^\d.\-]", "", value.strip())
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def _int_or_none(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def normalize_recipe_record(record: Optional[Mapping[str, Any]]) -> Recipe:
    """Read a stored recipe row (camelCase keys, JSON-encoded columns) into a Recipe.

    Nutrition is kept only when calories can be read as a number.
    """
    record = record or {}

    nutrition = None
    raw_nutrition = parse_json_field(record.get("nutritionData"))
    if isinstance(raw_nutrition, dict) and raw_nutrition:
        calories = _to_number(raw_nutrition.get("calories"))
        if calories is not None:
            nutrition = NutritionData(
                calories=calories,
                **{
                    key: _to_number(raw_nutrition.get(key))
                    for key in ("protein_g", "carbs_g", "fat_g", "fiber_g")
                },
            )

    ingredients = parse_json_field(record.get("ingredients"))
    instructions = parse_json_field(record.get("instructions"))
    description = record.get("description")
    image_url = record.get("imageUrl")

    recipe = Recipe(
        id=record.get("id") if isinstance(record.get("id"), str) else "",
        title=record.get("title") or "",
        description=description if isinstance(description, str) else None,
        ingredients=ingredients if isinstance(ingredients, list) else [],
        instructions=instructions if isinstance(instructions, list) else [],
        nutrition=nutrition,
        prep_time_minutes=_int_or_none(record.get("prepTimeMinutes")),
        cook_time_minutes=_int_or_none(record.get("cookTimeMinutes")),
        servings=_int_or_none(record.get("servings")),
        image_url=image_url if isinstance(image_url, str) else None,
    )
    for key, field in (("createdAt", "created_at"), ("updatedAt", "updated_at")):
        if isinstance(record.get(key), dt.datetime):
            setattr(recipe, field, record[key])
    return recipe
