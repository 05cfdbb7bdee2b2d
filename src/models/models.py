"""Pydantic contracts for JSON produced by the model.

Defines the two shapes Gemini must return (a weekly plan and a list of meal
alternatives) plus the nutrition block they share. All models use Pydantic v2
and are frozen: a validated result is never mutated after it is returned.

Quantity fields (calories and grams) accept numbers or strings with a leading
numeric token ("420 kcal" -> 420). Bounds are enforced, never clamped.
"""

import re
from typing import Annotated, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, RootModel
from pydantic_core import PydanticCustomError

# "1,200 kcal" reads as 1200; an ambiguous comma such as "12,5" does not match
LEADING_NUMBER = re.compile(r"^\s*(-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?)(?!,?\d)")


def coerce_quantity(value: object) -> Optional[Union[int, float]]:
    """Coerce a loosely typed quantity into an int or float.

    None passes through so optional fields accept an explicit JSON null.

    Raises:
        PydanticCustomError: `coercion_failed` for strings without a leading
            number, `wrong_type` for anything that is not a number or string.
    """
    if value is None:
        return None
    # bool is an int subclass but never a quantity
    if isinstance(value, bool):
        raise PydanticCustomError("wrong_type", "expected a number, got a boolean")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        match = LEADING_NUMBER.match(value)
        if not match:
            raise PydanticCustomError(
                "coercion_failed",
                "could not read a number from {value!r}",
                {"value": value},
            )
        token = match.group(1).replace(",", "")
        return float(token) if "." in token else int(token)
    raise PydanticCustomError(
        "wrong_type",
        "expected a number or numeric string, got {type_name}",
        {"type_name": type(value).__name__},
    )


Quantity = BeforeValidator(coerce_quantity)


class Nutrition(BaseModel):
    """Nutrition facts for one serving. Only calories is required."""

    model_config = ConfigDict(frozen=True)

    calories: Annotated[float, Field(ge=0, le=5000, description="kcal (0-5000)"), Quantity]
    protein_g: Annotated[Optional[float], Field(ge=0, le=200, description="Protein grams (0-200)"), Quantity] = None
    carbs_g: Annotated[Optional[float], Field(ge=0, le=1000, description="Carbohydrate grams (0-1000)"), Quantity] = None
    fat_g: Annotated[Optional[float], Field(ge=0, le=500, description="Fat grams (0-500)"), Quantity] = None
    fiber_g: Annotated[Optional[float], Field(ge=0, le=500, description="Fiber grams (0-500)"), Quantity] = None


class GeneratedMeal(BaseModel):
    """One meal as generated by the model.

    Shared by the weekly plan (one per breakfast/lunch/dinner slot) and the
    alternatives list. JSON keys for times are camelCase, matching the prompt.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    title: Annotated[str, Field(min_length=1, max_length=200)]
    description: Annotated[str, Field(min_length=1, max_length=1000)]
    ingredients: Annotated[List[str], Field(min_length=1, max_length=100)]
    instructions: Annotated[List[str], Field(min_length=1, max_length=100)]
    nutrition: Nutrition
    prep_time_minutes: Annotated[Optional[int], Field(ge=0, le=1440, alias="prepTimeMinutes")] = None
    cook_time_minutes: Annotated[Optional[int], Field(ge=0, le=1440, alias="cookTimeMinutes")] = None
    servings: Annotated[int, Field(ge=1, le=100)]


class DailyMeals(BaseModel):
    """The meals for a single day. Any slot may be absent."""

    model_config = ConfigDict(frozen=True)

    breakfast: Optional[GeneratedMeal] = None
    lunch: Optional[GeneratedMeal] = None
    dinner: Optional[GeneratedMeal] = None


class WeeklyPlan(BaseModel):
    """Top-level weekly plan: `{"meals": {"Monday": {...}, ...}}` keyed by day name."""

    model_config = ConfigDict(frozen=True)

    meals: dict[str, DailyMeals]


class AlternativesArray(RootModel[Annotated[List[GeneratedMeal], Field(min_length=1)]]):
    """Non-empty JSON array of replacement meals."""

    model_config = ConfigDict(frozen=True)

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> GeneratedMeal:
        return self.root[index]
