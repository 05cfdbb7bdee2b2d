"""Prompt builders for weekly plans and meal alternatives.

The builders describe the task and the exact JSON shape. The JSON-only suffix
and the corrective retry suffix are appended by the retry orchestrator, so the
same task text is reused verbatim on every attempt.
"""

import datetime as dt
from typing import Optional, Sequence

JSON_ONLY_INSTRUCTION = "Respond with raw JSON only."

RETRY_INSTRUCTION = (
    "Your previous output failed validation. Re-output ONLY valid JSON that matches the schema. "
    "No markdown, no comments, no surrounding text."
)

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_MEAL_JSON_EXAMPLE = """{
        "title": "Meal Title",
        "description": "Brief description",
        "ingredients": ["ingredient 1", "ingredient 2"],
        "instructions": ["step 1", "step 2"],
        "nutrition": {
          "calories": 400,
          "protein_g": 20,
          "carbs_g": 45,
          "fat_g": 15,
          "fiber_g": 5
        },
        "prepTimeMinutes": 10,
        "cookTimeMinutes": 15,
        "servings": 1
      }"""


def _preference_lines(
    diet_type: Optional[str],
    allergies: Sequence[str],
    calorie_goal: Optional[int],
    calorie_fallback: str,
) -> str:
    return (
        f"- Diet Type: {diet_type or 'No specific diet'}\n"
        f"- Allergies: {', '.join(allergies) if allergies else 'None specified'}\n"
        f"- Daily Calorie Goal: {calorie_goal or calorie_fallback}"
    )


def build_weekly_plan_prompt(
    week_range: str,
    diet_type: Optional[str] = None,
    allergies: Sequence[str] = (),
    calorie_goal: Optional[int] = None,
    default_calorie_goal: int = 2000,
) -> str:
    """Build the task prompt for a Monday-to-Sunday plan.

    Args:
        week_range: Human readable range, e.g. "Nov 3 - Nov 9, 2025".
        diet_type: Free-text diet (vegetarian, keto, ...).
        allergies: Ingredients the user must avoid.
        calorie_goal: Daily calorie target from the profile.
        default_calorie_goal: Target mentioned when the profile has none.

    Returns:
        Prompt text without the JSON-only suffix.
    """
    preferences = _preference_lines(
        diet_type, allergies, calorie_goal, f"Around {default_calorie_goal} calories"
    )
    return f"""Generate a healthy, balanced weekly meal plan for {week_range}.

User Preferences:
{preferences}

Requirements:
1. Create meals for each day: {DAY_NAMES[0]} through {DAY_NAMES[-1]}
2. Each day must have: breakfast, lunch, and dinner
3. All meals should be realistic, healthy recipes
4. Respect dietary restrictions and allergies
5. Provide accurate nutrition information for each meal
6. Include preparation time and serving size
7. Meals should be varied and interesting

Format your response as a JSON object with this exact structure:
{{
  "meals": {{
    "Monday": {{
      "breakfast": {_MEAL_JSON_EXAMPLE},
      "lunch": {{...}},
      "dinner": {{...}}
    }},
    "Tuesday": {{...}},
    ...
  }}
}}

Every meal needs a non-empty title, description, ingredients list, instructions list,
nutrition.calories and servings (at least 1). Use plain numbers for nutrition values.
Ensure the JSON is valid and complete. Focus on nutritious, appealing meals that fit the user's preferences."""


def build_alternatives_prompt(
    meal_title: str,
    meal_type: str,
    current_calories: float,
    current_ingredients: Sequence[str],
    count: int = 3,
    diet_type: Optional[str] = None,
    allergies: Sequence[str] = (),
    calorie_goal: Optional[int] = None,
) -> str:
    """Build the task prompt asking for `count` replacements for one meal."""
    preferences = _preference_lines(diet_type, allergies, calorie_goal, "No specific goal")
    return f"""Generate {count} alternative meal suggestions to replace "{meal_title}" ({meal_type}).

User preferences:
{preferences}

Current meal details:
- Type: {meal_type}
- Approximate calories: {current_calories:g}
- Ingredients to avoid repeating: {', '.join(current_ingredients) or 'None'}

For each alternative meal, provide:
1. A creative, appealing title
2. Brief description (2-3 sentences)
3. List of 4-8 key ingredients
4. Step-by-step cooking instructions (3-5 steps)
5. Nutrition facts (calories, protein_g, carbs_g, fat_g, fiber_g)
6. Prep time in minutes
7. Cook time in minutes (if applicable)
8. Number of servings (assume 1)

Return the response as a JSON array of meal objects shaped like:
[
  {_MEAL_JSON_EXAMPLE}
]

Ensure meals are healthy, balanced, and suitable for the user's preferences. Keep calorie counts reasonable for a single meal."""


def compose_attempt_prompt(prompt: str, attempt: int) -> str:
    """Prompt actually sent on `attempt` (1-based).

    Attempt 1 adds only the JSON-only instruction; later attempts also add the
    corrective instruction.
    """
    composed = f"{prompt}\n{JSON_ONLY_INSTRUCTION}"
    if attempt > 1:
        composed += f"\n{RETRY_INSTRUCTION}"
    return composed


def format_week_label(week_start: dt.date) -> str:
    """Short label for logs, e.g. "week of 2025-11-03"."""
    return f"week of {week_start.isoformat()}"
