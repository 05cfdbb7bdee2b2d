#!/usr/bin/env python3
"""Ad hoc query runner for the Meal Planner Service.

Generate a weekly meal plan directly against Gemini without any web server.

Usage:
    python query.py
    python query.py --diet vegetarian --allergies "peanuts, shellfish" --calories 1800
    python query.py --week 2025-11-03 --debug  # Show full JSON of the stored plan
    python query.py --alternatives breakfast   # Also suggest swaps for Monday's breakfast

Features:
- Real Gemini client built from .env / environment (GEMINI_API_KEY required)
- In-memory repository and rate limiter, so nothing is persisted
- Preferences saved as the CLI user's profile, then read back for generation
- Rich table rendering of the week
- Debug mode to display the full plan JSON
"""

import asyncio
import datetime as dt
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from src.generation.client import create_generation_client
from src.generation.transform import WeekUtils
from src.models.meal_plan import MEAL_TYPES, WeekMealPlan
from src.services.meal_plan import MealPlanService, MealPreferences
from src.services.meal_swap import CurrentMeal, MealSwapService
from src.services.profile import ProfileService
from src.services.rate_limiter import FixedWindowRateLimiter
from src.services.repository import InMemoryMealPlanRepository
from src.utils.config import config
from src.utils.logger import logger

console = Console()

CLI_USER_ID = "cli-user"


def render_plan(plan: WeekMealPlan) -> None:
    """Print the week as a table: one row per day, one column per meal type."""
    table = Table(title=f"Meal plan: {WeekUtils.format_week_range(plan.week_start)}")
    table.add_column("Day", style="bold cyan")
    for meal_type in MEAL_TYPES:
        table.add_column(meal_type.capitalize())

    for day in plan.days:
        cells = []
        for meal_type in MEAL_TYPES:
            meal = getattr(day, meal_type)
            if meal is None or meal.recipe is None:
                cells.append("[dim]-[/dim]")
                continue
            calories = meal.recipe.nutrition.calories if meal.recipe.nutrition else None
            suffix = f"\n[dim]{calories:g} kcal[/dim]" if calories is not None else ""
            cells.append(f"{meal.recipe.title}{suffix}")
        table.add_row(day.day, *cells)

    console.print(table)


async def run_query(
    diet_type: Optional[str],
    allergies: Optional[str],
    calorie_goal: Optional[int],
    week_start: dt.date,
    debug: bool = False,
    alternatives_for: Optional[str] = None,
) -> None:
    """Save the CLI user's profile, generate a plan from it, and optionally suggest alternatives."""
    client = create_generation_client()
    repository = InMemoryMealPlanRepository()
    limiter = FixedWindowRateLimiter(
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        max_requests=config.RATE_LIMIT_MAX_REQUESTS,
        cleanup_interval=config.RATE_LIMIT_CLEANUP_SECONDS,
    )

    async with limiter:
        profile_response = await ProfileService(repository).save_profile(
            CLI_USER_ID, diet_type, calorie_goal or config.DEFAULT_CALORIE_GOAL, allergies
        )
        if not profile_response.success:
            console.print(f"[red]✗ {profile_response.error}[/red]")
            sys.exit(1)

        plan_service = MealPlanService(client, repository, limiter)
        logger.info(f"Generating plan for {WeekUtils.format_week_range(week_start)} ({config.GEMINI_MODEL})...")
        response = await plan_service.generate_weekly_meal_plan(CLI_USER_ID, week_start)

        if not response.success:
            console.print(f"[red]✗ {response.error}[/red]")
            sys.exit(1)

        console.print()
        render_plan(response.meal_plan)

        if debug:
            console.print("[bold cyan]Debug Mode: Full Plan[/bold cyan]")
            console.print_json(response.meal_plan.model_dump_json())

        if alternatives_for:
            monday = response.meal_plan.days[0]
            meal = getattr(monday, alternatives_for)
            if meal is None or meal.recipe is None:
                console.print(f"[yellow]Monday has no {alternatives_for} to replace[/yellow]")
                return
            swap_service = MealSwapService(client, repository, limiter)
            current = CurrentMeal(
                title=meal.recipe.title,
                type=alternatives_for,
                ingredients=meal.recipe.ingredients,
                calories=meal.recipe.nutrition.calories if meal.recipe.nutrition else 0,
            )
            preferences = MealPreferences.from_profile(profile_response.profile)
            alternatives = await swap_service.generate_meal_alternatives(CLI_USER_ID, current, preferences)
            console.print(f"\n[bold]Alternatives for {meal.recipe.title}:[/bold]")
            for alternative in alternatives:
                console.print(f"  • {alternative.title} ({alternative.nutrition.calories:g} kcal)")


def _usage() -> None:
    print(
        "Usage: python query.py [--debug] [--diet TYPE] [--allergies \"a, b\"] "
        "[--calories N] [--week YYYY-MM-DD] [--alternatives breakfast|lunch|dinner]"
    )


if __name__ == "__main__":
    debug_mode = False
    diet_type = None
    allergies = None
    calorie_goal = None
    week_start = dt.date.today()
    alternatives_for = None
    value_flags = ("--diet", "--allergies", "--calories", "--week", "--alternatives")

    args = sys.argv[1:]
    index = 0
    while index < len(args):
        flag = args[index]
        if flag == "--debug":
            debug_mode = True
            index += 1
            continue
        if flag in ("-h", "--help"):
            _usage()
            sys.exit(0)
        if flag not in value_flags:
            print(f"Unknown flag: {flag}")
            _usage()
            sys.exit(1)
        if index + 1 >= len(args):
            print(f"Error: {flag} flag requires a value")
            sys.exit(1)
        value = args[index + 1]
        index += 2

        if flag == "--diet":
            diet_type = value
        elif flag == "--allergies":
            allergies = value
        elif flag == "--calories":
            try:
                calorie_goal = int(value)
            except ValueError:
                print(f"Error: --calories must be an integer, got: {value}")
                sys.exit(1)
        elif flag == "--week":
            try:
                week_start = dt.date.fromisoformat(value)
            except ValueError:
                print(f"Error: --week must be YYYY-MM-DD, got: {value}")
                sys.exit(1)
        elif flag == "--alternatives":
            if value not in MEAL_TYPES:
                print(f"Error: --alternatives must be one of {', '.join(MEAL_TYPES)}")
                sys.exit(1)
            alternatives_for = value

    try:
        asyncio.run(
            run_query(diet_type, allergies, calorie_goal, week_start, debug=debug_mode, alternatives_for=alternatives_for)
        )
    except KeyboardInterrupt:
        logger.info("\nQuery interrupted by user.")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Query execution failed: {e}", exc_info=True)
        sys.exit(1)
