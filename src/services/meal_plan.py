"""Weekly meal plan service.

Request handlers call MealPlanService. It checks the rate limit, builds the
prompt from the user's preferences, runs guarded generation against the
weekly plan schema, maps the result onto the week and persists it. Failures
come back as MealGenerationResponse(success=False) with a message safe to show
to the user; internal error detail only goes to the log.
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from src.generation.client import GenerationClient
from src.generation.errors import ExhaustionError, RateLimitExceeded
from src.generation.orchestrator import run_guarded_generation
from src.generation.schemas import WEEKLY_PLAN_SCHEMA
from src.generation.transform import WeekUtils, weekly_plan_to_week_meal_plan
from src.models.meal_plan import (
    MAX_CALORIE_GOAL,
    MIN_CALORIE_GOAL,
    MealGenerationResponse,
    Profile,
    WeekMealPlan,
)
from src.prompts.prompts import build_weekly_plan_prompt, format_week_label
from src.services.rate_limiter import FixedWindowRateLimiter
from src.services.repository import MealPlanRepository
from src.utils.config import Config, config
from src.utils.logger import logger

GENERATE_MEAL_PLAN_ACTION = "generate_meal_plan"
GENERATION_FAILED_MESSAGE = "Failed to generate meal plan"


class MealPreferences(BaseModel):
    """Dietary preferences taken from the user's profile."""

    diet_type: Optional[str] = None
    allergies: list[str] = Field(default_factory=list)
    calorie_goal: Optional[int] = Field(None, ge=MIN_CALORIE_GOAL, le=MAX_CALORIE_GOAL)

    @field_validator("allergies", mode="before")
    @classmethod
    def split_allergies(cls, value):
        """Profiles store allergies as one comma-separated string."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @classmethod
    def from_profile(cls, profile: Optional[Profile]) -> "MealPreferences":
        """Preferences stored on the profile, or defaults when there is none."""
        if profile is None:
            return cls()
        return cls(
            diet_type=profile.diet_type or None,
            allergies=profile.allergies,
            calorie_goal=profile.calorie_goal or None,
        )


def normalize_week_start(day: dt.date) -> dt.date:
    """Monday of the week containing `day`, with any time part dropped."""
    return WeekUtils.get_week_start(day)


class MealPlanService:
    """Generates, stores and reads weekly plans for authenticated users."""

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

    async def generate_weekly_meal_plan(
        self,
        user_id: str,
        week_start: dt.date,
        preferences: Optional[MealPreferences] = None,
    ) -> MealGenerationResponse:
        """Generate and persist a plan for the week containing `week_start`.

        Without explicit `preferences` the user's stored profile is used.
        """
        if not user_id:
            return MealGenerationResponse(success=False, error="User not authenticated")

        try:
            self.rate_limiter.check_limit(user_id, GENERATE_MEAL_PLAN_ACTION)
        except RateLimitExceeded as e:
            return MealGenerationResponse(success=False, error=str(e))

        if preferences is None:
            try:
                preferences = MealPreferences.from_profile(await self.repository.get_profile(user_id))
            except Exception as e:
                logger.error(f"Loading profile failed: {e}", exc_info=True, extra={"user_id": user_id})
                return MealGenerationResponse(success=False, error="Internal server error")

        week_start = normalize_week_start(week_start)
        prompt = build_weekly_plan_prompt(
            WeekUtils.format_week_range(week_start),
            diet_type=preferences.diet_type,
            allergies=preferences.allergies,
            calorie_goal=preferences.calorie_goal,
            default_calorie_goal=self.settings.DEFAULT_CALORIE_GOAL,
        )

        logger.info(
            f"Generating meal plan for {format_week_label(week_start)}",
            extra={"user_id": user_id, "action": GENERATE_MEAL_PLAN_ACTION},
        )
        try:
            plan = await run_guarded_generation(
                prompt,
                WEEKLY_PLAN_SCHEMA,
                self.settings.MAX_ATTEMPTS,
                client=self.client,
                base_delay=self.settings.RETRY_BASE_DELAY,
            )
        except ExhaustionError as e:
            logger.error(f"Meal plan generation failed: {e}", extra={"user_id": user_id})
            return MealGenerationResponse(success=False, error=GENERATION_FAILED_MESSAGE)

        week_plan = weekly_plan_to_week_meal_plan(plan, week_start)
        try:
            saved = await self.repository.save_meal_plan(week_plan, user_id)
        except Exception as e:
            logger.error(f"Saving meal plan failed: {e}", exc_info=True, extra={"user_id": user_id})
            return MealGenerationResponse(success=False, error="Internal server error")

        return MealGenerationResponse(success=True, meal_plan=saved)

    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[WeekMealPlan]:
        """Stored plan for the week containing `week_start`, or None."""
        if not user_id:
            return None
        return await self.repository.get_meal_plan(user_id, normalize_week_start(week_start))

    async def get_user_meal_plans(self, user_id: str) -> list[WeekMealPlan]:
        """All stored plans of the user, newest week first."""
        if not user_id:
            return []
        return await self.repository.list_meal_plans(user_id)
