"""Shared fixtures for unit tests.

Provides sample model output and a scripted generation client so no test
talks to Gemini.
"""

import copy
import json

import pytest

from src.generation.errors import GenerationError


def make_meal(title: str = "Oatmeal", calories=300, **overrides) -> dict:
    """A meal dict that satisfies the shared meal shape."""
    meal = {
        "title": title,
        "description": f"A simple {title.lower()}",
        "ingredients": ["oats", "milk"],
        "instructions": ["Simmer oats in milk", "Serve warm"],
        "nutrition": {"calories": calories},
        "servings": 1,
    }
    meal.update(overrides)
    return meal


class StubClient:
    """Scripted GenerationClient: returns (or raises) one reply per call."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies[min(len(self.prompts), len(self.replies)) - 1]
        if isinstance(reply, BaseException):
            raise reply
        return reply


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def meal_dict():
    return make_meal()


@pytest.fixture
def weekly_plan_dict():
    """Monday and Tuesday filled, Tuesday without dinner."""
    return {
        "meals": {
            "Monday": {
                "breakfast": make_meal("Oatmeal", 300),
                "lunch": make_meal("Lentil Soup", "450 kcal"),
                "dinner": make_meal("Salmon Bowl", 620, prepTimeMinutes=15, cookTimeMinutes=20),
            },
            "Tuesday": {
                "breakfast": make_meal("Yogurt Parfait", 280),
                "lunch": make_meal("Chickpea Salad", 510),
            },
        }
    }


@pytest.fixture
def weekly_plan_json(weekly_plan_dict):
    return json.dumps(weekly_plan_dict)


@pytest.fixture
def alternatives_json():
    return json.dumps([make_meal("Veggie Omelette", 350), make_meal("Smoothie Bowl", 320)])


@pytest.fixture
def stub_client():
    """Factory for StubClient instances."""

    def _factory(*replies):
        return StubClient(copy.copy(replies))

    return _factory


@pytest.fixture
def failing_client():
    return StubClient([GenerationError("backend unavailable")])


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def meal_factory():
    return make_meal
