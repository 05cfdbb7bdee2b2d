"""Domain models for stored meal plans.

These are the application's shapes after a validated generation result has
been mapped: recipes, meals placed on a (day, meal type) slot, and a week of
days. Identifiers are empty strings until the repository assigns them.
"""

import datetime as dt
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field

MealType = Literal["breakfast", "lunch", "dinner"]
MEAL_TYPES: tuple[str, ...] = ("breakfast", "lunch", "dinner")


class NutritionData(BaseModel):
    """Nutrition facts attached to a stored recipe."""

    calories: float
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fat_g: Optional[float] = None
    fiber_g: Optional[float] = None


class Recipe(BaseModel):
    """A recipe as stored by the application."""

    id: str = ""
    title: str
    description: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    nutrition: Optional[NutritionData] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    image_url: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.now)


class Meal(BaseModel):
    """A recipe placed on one (day, meal type) slot of a plan."""

    id: str = ""
    meal_plan_id: str = ""
    day_of_week: Annotated[int, Field(ge=1, le=7, description="1=Monday, 7=Sunday")]
    type: MealType
    recipe: Optional[Recipe] = None
    recipe_id: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.now)


class DayMeals(BaseModel):
    """One day of a week plan with its (optional) three slots."""

    day: str
    day_of_week: Annotated[int, Field(ge=1, le=7)]
    date: dt.date
    breakfast: Optional[Meal] = None
    lunch: Optional[Meal] = None
    dinner: Optional[Meal] = None

    def meals(self) -> dict[str, Meal]:
        """Filled slots keyed by meal type, in breakfast/lunch/dinner order."""
        return {meal_type: getattr(self, meal_type) for meal_type in MEAL_TYPES if getattr(self, meal_type)}


class WeekMealPlan(BaseModel):
    """A Monday-to-Sunday plan."""

    id: str = ""
    week_start: dt.date
    week_end: dt.date
    days: List[DayMeals]


class MealGenerationResponse(BaseModel):
    """Outcome returned to request handlers. `error` is safe to show to users."""

    success: bool
    meal_plan: Optional[WeekMealPlan] = None
    error: Optional[str] = None


# Accepted daily calorie goal range for profiles and plan preferences
MIN_CALORIE_GOAL = 500
MAX_CALORIE_GOAL = 10000


class Profile(BaseModel):
    """A user's dietary profile. Allergies are kept as entered (comma-separated)."""

    user_id: str
    diet_type: Optional[str] = None
    allergies: Optional[str] = None
    calorie_goal: Optional[int] = Field(None, ge=MIN_CALORIE_GOAL, le=MAX_CALORIE_GOAL)
    created_at: dt.datetime = Field(default_factory=dt.datetime.now)
    updated_at: dt.datetime = Field(default_factory=dt.datetime.now)


class ProfileResponse(BaseModel):
    """Outcome of saving a profile. `error` is safe to show to users."""

    success: bool
    profile: Optional[Profile] = None
    error: Optional[str] = None
