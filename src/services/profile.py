"""Profile service: the dietary preferences weekly plans are generated from."""

import math
from typing import Optional, Union

from src.models.meal_plan import MAX_CALORIE_GOAL, MIN_CALORIE_GOAL, Profile, ProfileResponse
from src.services.repository import MealPlanRepository
from src.utils.logger import logger

INVALID_CALORIE_GOAL_MESSAGE = "Invalid calorie goal"


def parse_calorie_goal(value: Union[int, float, str, None]) -> Optional[int]:
    """Read a calorie goal from form input, or None when it is missing or out of range."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or not (MIN_CALORIE_GOAL <= parsed <= MAX_CALORIE_GOAL):
        return None
    return int(parsed)


class ProfileService:
    """Reads and saves per-user dietary profiles."""

    def __init__(self, repository: MealPlanRepository) -> None:
        self.repository = repository

    async def check_profile_exists(self, user_id: str) -> bool:
        if not user_id:
            return False
        return await self.repository.get_profile(user_id) is not None

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        if not user_id:
            return None
        return await self.repository.get_profile(user_id)

    async def save_profile(
        self,
        user_id: str,
        diet_type: Optional[str],
        calorie_goal: Union[int, float, str, None],
        allergies: Optional[str] = None,
    ) -> ProfileResponse:
        """Create or update the user's profile.

        Args:
            user_id: Authenticated user; empty means not signed in.
            diet_type: Free-form diet label such as "vegetarian".
            calorie_goal: Daily goal from the form, accepted between 500 and 10000.
            allergies: Comma-separated allergies, stored as entered.

        Returns:
            ProfileResponse with the stored profile, or success=False and a
            message safe to show to the user.
        """
        if not user_id:
            return ProfileResponse(success=False, error="Not authenticated")

        goal = parse_calorie_goal(calorie_goal)
        if goal is None:
            return ProfileResponse(success=False, error=INVALID_CALORIE_GOAL_MESSAGE)

        profile = Profile(user_id=user_id, diet_type=diet_type, allergies=allergies, calorie_goal=goal)
        try:
            saved = await self.repository.upsert_profile(profile)
        except Exception as e:
            logger.error(f"Saving profile failed: {e}", exc_info=True, extra={"user_id": user_id})
            return ProfileResponse(success=False, error="Server error")

        logger.info("Profile saved", extra={"user_id": user_id, "action": "save_profile"})
        return ProfileResponse(success=True, profile=saved)
