"""Meal swap service: suggest alternatives for one meal and swap one in.

Alternatives come from guarded generation against the alternatives array
schema, so every suggestion is complete and in bounds; no default values are
patched in after the fact.
"""

from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

from src.generation.client import GenerationClient
from src.generation.errors import ExhaustionError, MealSwapError
from src.generation.orchestrator import run_guarded_generation
from src.generation.schemas import ALTERNATIVES_ARRAY_SCHEMA
from src.generation.transform import generated_meal_to_recipe
from src.models.meal_plan import MEAL_TYPES, MealType, Recipe
from src.models.models import GeneratedMeal
from src.prompts.prompts import build_alternatives_prompt
from src.services.meal_plan import MealPreferences
from src.services.rate_limiter import FixedWindowRateLimiter
from src.services.repository import MealPlanRepository
from src.utils.config import Config, config
from src.utils.logger import logger

SWAP_MEAL_ACTION = "swap_meal"


class CurrentMeal(BaseModel):
    """The meal the user wants to replace."""

    title: Annotated[str, Field(min_length=1)]
    type: MealType
    ingredients: List[str] = Field(default_factory=list)
    calories: Annotated[float, Field(ge=0)]


class MealSwapService:
    """Generates replacement meals and repoints plan slots to them."""

    def __init__(
        self,
        client: GenerationClient,
        repository: MealPlanRepository,
        rate_limiter: FixedWindowRateLimiter,
        settings: Optional[Config] = None,
    ) -> None:
        self.client = client
        self.repository = repository
        self.rate_limiter = rate_limiter
        self.settings = settings or config
        self.settings.validate_generation()

    async def generate_meal_alternatives(
        self,
        user_id: str,
        current_meal: CurrentMeal,
        preferences: Optional[MealPreferences] = None,
    ) -> list[GeneratedMeal]:
        """Ask the model for replacements for `current_meal`.

        Raises:
            MealSwapError: If the user is missing or generation was exhausted.
            RateLimitExceeded: If the user exceeded the swap rate limit.
        """
        if not user_id:
            raise MealSwapError("User must be authenticated to swap meals")

        self.rate_limiter.check_limit(user_id, SWAP_MEAL_ACTION)

        preferences = preferences or MealPreferences()
        prompt = build_alternatives_prompt(
            current_meal.title,
            current_meal.type,
            current_meal.calories,
            current_meal.ingredients,
            count=self.settings.ALTERNATIVES_COUNT,
            diet_type=preferences.diet_type,
            allergies=preferences.allergies,
            calorie_goal=preferences.calorie_goal,
        )
        try:
            alternatives = await run_guarded_generation(
                prompt,
                ALTERNATIVES_ARRAY_SCHEMA,
                self.settings.MAX_ATTEMPTS,
                client=self.client,
                base_delay=self.settings.RETRY_BASE_DELAY,
            )
        except ExhaustionError as e:
            logger.error(f"Meal alternatives generation failed: {e}", extra={"user_id": user_id})
            raise MealSwapError("Failed to generate meal alternatives") from e

        logger.info(
            f"Generated {len(alternatives)} alternative(s) for '{current_meal.title}'",
            extra={"user_id": user_id, "action": SWAP_MEAL_ACTION},
        )
        return list(alternatives)

    async def swap_meal(
        self,
        user_id: str,
        meal_plan_id: str,
        day_of_week: int,
        meal_type: str,
        alternative: GeneratedMeal,
    ) -> Recipe:
        """Store `alternative` as a recipe and point the plan slot at it.

        Raises:
            MealSwapError: On invalid input or when the slot does not exist. The
                recipe created for a missing slot is deleted again.
        """
        if not user_id:
            raise MealSwapError("User must be authenticated to swap meals")
        if not meal_plan_id or not isinstance(meal_plan_id, str):
            raise MealSwapError("Invalid meal_plan_id provided")
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 1 <= day_of_week <= 7:
            raise MealSwapError("Invalid day_of_week provided")
        if meal_type not in MEAL_TYPES:
            raise MealSwapError("Invalid meal_type provided")

        recipe = await self.repository.create_recipe(generated_meal_to_recipe(alternative))
        updated = await self.repository.update_meal_recipe(meal_plan_id, day_of_week, meal_type, recipe.id)

        if updated == 0:
            try:
                await self.repository.delete_recipe(recipe.id)
            except Exception as cleanup_error:
                logger.error(f"Failed to clean up recipe {recipe.id} after failed swap: {cleanup_error}")
            raise MealSwapError(
                f"Meal not found for meal_plan_id={meal_plan_id} day_of_week={day_of_week} type={meal_type}"
            )

        logger.info(
            f"Swapped {meal_type} on day {day_of_week} of plan {meal_plan_id} to '{recipe.title}'",
            extra={"user_id": user_id, "action": SWAP_MEAL_ACTION},
        )
        return recipe
