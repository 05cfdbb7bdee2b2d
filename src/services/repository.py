"""Persistence boundary for meal plans and profiles.

The database is an external collaborator. MealPlanRepository is the contract
the services depend on; InMemoryMealPlanRepository implements it for tests and
the ad hoc CLI. It stores rows the way the relational schema does (JSON-encoded
list and nutrition columns) and reads them back through normalize_recipe_record.
"""

import datetime as dt
import json
import uuid
from copy import deepcopy
from typing import Any, Optional, Protocol

from src.generation.transform import WeekUtils, normalize_recipe_record
from src.models.meal_plan import Meal, Profile, Recipe, WeekMealPlan
from src.utils.logger import logger


class MealPlanRepository(Protocol):
    """Storage operations used by the meal plan, meal swap and profile services."""

    async def save_meal_plan(self, plan: WeekMealPlan, user_id: str) -> WeekMealPlan:
        """Atomically create one recipe per generated recipe and one meal per slot.

        Returns the plan with ids assigned.
        """
        ...

    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[WeekMealPlan]:
        ...

    async def list_meal_plans(self, user_id: str) -> list[WeekMealPlan]:
        """All plans of a user, newest week first."""
        ...

    async def create_recipe(self, recipe: Recipe) -> Recipe:
        ...

    async def delete_recipe(self, recipe_id: str) -> None:
        ...

    async def update_meal_recipe(
        self, meal_plan_id: str, day_of_week: int, meal_type: str, recipe_id: str
    ) -> int:
        """Point the slot at a new recipe. Returns the number of meals updated."""
        ...

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        ...

    async def upsert_profile(self, profile: Profile) -> Profile:
        """Create the user's profile or update it in place, keeping created_at."""
        ...


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryMealPlanRepository:
    """Dict-backed MealPlanRepository. Writes are staged and committed together."""

    def __init__(self) -> None:
        self.recipes: dict[str, dict[str, Any]] = {}
        self.meal_plans: dict[str, dict[str, Any]] = {}
        self.meals: dict[str, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}

    @staticmethod
    def _recipe_row(recipe: Recipe, recipe_id: str) -> dict[str, Any]:
        now = dt.datetime.now()
        return {
            "id": recipe_id,
            "title": recipe.title,
            "description": recipe.description,
            "ingredients": json.dumps(recipe.ingredients),
            "instructions": json.dumps(recipe.instructions),
            "nutritionData": json.dumps(recipe.nutrition.model_dump(exclude_none=True) if recipe.nutrition else {}),
            "prepTimeMinutes": recipe.prep_time_minutes,
            "cookTimeMinutes": recipe.cook_time_minutes,
            "servings": recipe.servings,
            "imageUrl": recipe.image_url,
            "createdAt": now,
            "updatedAt": now,
        }

    async def save_meal_plan(self, plan: WeekMealPlan, user_id: str) -> WeekMealPlan:
        week_start = WeekUtils.get_week_start(plan.week_start)
        for row in self.meal_plans.values():
            if row["userId"] == user_id and row["weekStart"] == week_start:
                raise ValueError(f"Meal plan already exists for user {user_id} and week {week_start}")

        saved = plan.model_copy(deep=True)
        saved.id = _new_id()
        staged_recipes: dict[str, dict[str, Any]] = {}
        staged_meals: dict[str, dict[str, Any]] = {}

        for day in saved.days:
            for meal_type, meal in day.meals().items():
                if meal.recipe is None:
                    continue
                recipe_id = _new_id()
                staged_recipes[recipe_id] = self._recipe_row(meal.recipe, recipe_id)
                meal.id = _new_id()
                meal.meal_plan_id = saved.id
                meal.recipe_id = recipe_id
                meal.recipe.id = recipe_id
                staged_meals[meal.id] = {
                    "id": meal.id,
                    "mealPlanId": saved.id,
                    "dayOfWeek": day.day_of_week,
                    "type": meal_type,
                    "recipeId": recipe_id,
                    "updatedAt": dt.datetime.now(),
                }

        # Commit all rows together
        self.recipes.update(staged_recipes)
        self.meals.update(staged_meals)
        self.meal_plans[saved.id] = {"id": saved.id, "userId": user_id, "weekStart": week_start}
        logger.info(
            f"Saved meal plan {saved.id}: {len(staged_recipes)} recipes, {len(staged_meals)} meals",
            extra={"user_id": user_id},
        )
        return saved

    def _load_plan(self, plan_row: dict[str, Any]) -> WeekMealPlan:
        days = WeekUtils.get_week_days(plan_row["weekStart"])
        for meal_row in self.meals.values():
            if meal_row["mealPlanId"] != plan_row["id"]:
                continue
            recipe_row = self.recipes.get(meal_row["recipeId"])
            meal = Meal(
                id=meal_row["id"],
                meal_plan_id=plan_row["id"],
                day_of_week=meal_row["dayOfWeek"],
                type=meal_row["type"],
                recipe_id=meal_row["recipeId"],
                recipe=normalize_recipe_record(recipe_row) if recipe_row else None,
                updated_at=meal_row["updatedAt"],
            )
            setattr(days[meal.day_of_week - 1], meal.type, meal)
        return WeekMealPlan(
            id=plan_row["id"],
            week_start=plan_row["weekStart"],
            week_end=WeekUtils.get_week_end(plan_row["weekStart"]),
            days=days,
        )

    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[WeekMealPlan]:
        week_start = WeekUtils.get_week_start(week_start)
        for row in self.meal_plans.values():
            if row["userId"] == user_id and row["weekStart"] == week_start:
                return self._load_plan(row)
        return None

    async def list_meal_plans(self, user_id: str) -> list[WeekMealPlan]:
        rows = sorted(
            (row for row in self.meal_plans.values() if row["userId"] == user_id),
            key=lambda row: row["weekStart"],
            reverse=True,
        )
        return [self._load_plan(row) for row in rows]

    async def create_recipe(self, recipe: Recipe) -> Recipe:
        recipe_id = _new_id()
        self.recipes[recipe_id] = self._recipe_row(recipe, recipe_id)
        return normalize_recipe_record(deepcopy(self.recipes[recipe_id]))

    async def delete_recipe(self, recipe_id: str) -> None:
        if recipe_id not in self.recipes:
            raise KeyError(recipe_id)
        del self.recipes[recipe_id]

    async def update_meal_recipe(
        self, meal_plan_id: str, day_of_week: int, meal_type: str, recipe_id: str
    ) -> int:
        updated = 0
        for row in self.meals.values():
            if row["mealPlanId"] == meal_plan_id and row["dayOfWeek"] == day_of_week and row["type"] == meal_type:
                row["recipeId"] = recipe_id
                row["updatedAt"] = dt.datetime.now()
                updated += 1
        return updated

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = self.profiles.get(user_id)
        if row is None:
            return None
        return Profile(
            user_id=row["userId"],
            diet_type=row["dietType"],
            allergies=row["allergies"],
            calorie_goal=row["calorieGoal"],
            created_at=row["createdAt"],
            updated_at=row["updatedAt"],
        )

    async def upsert_profile(self, profile: Profile) -> Profile:
        now = dt.datetime.now()
        existing = self.profiles.get(profile.user_id)
        self.profiles[profile.user_id] = {
            "userId": profile.user_id,
            "dietType": profile.diet_type,
            "allergies": profile.allergies,
            "calorieGoal": profile.calorie_goal,
            "createdAt": existing["createdAt"] if existing else now,
            "updatedAt": now,
        }
        return await self.get_profile(profile.user_id)
