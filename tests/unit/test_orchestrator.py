"""Unit tests for the retry orchestrator (guarded generation)."""

import asyncio
import json
import logging
from unittest.mock import patch

import pytest

from src.generation.errors import (
    ExhaustionError,
    ExtractionError,
    GenerationError,
    ParseError,
    SchemaValidationError,
)
from src.generation.orchestrator import (
    GenerationRequest,
    GenerationState,
    GuardedGeneration,
    run_guarded_generation,
)
from src.generation.schemas import ALTERNATIVES_ARRAY_SCHEMA, WEEKLY_PLAN_SCHEMA
from src.models.models import AlternativesArray, WeeklyPlan
from src.prompts.prompts import JSON_ONLY_INSTRUCTION, RETRY_INSTRUCTION

MONDAY_PAYLOAD = (
    '{"meals":{"Monday":{"breakfast":{"title":"Oats","description":"d",'
    '"ingredients":["oats"],"instructions":["cook"],"nutrition":{"calories":300},"servings":1}}}}'
)
MONDAY_REPLY = f"```json\n{MONDAY_PAYLOAD}\n```"


class TestGenerationRequest:
    """Tests for GenerationRequest construction."""

    def test_default_max_attempts(self) -> None:
        """Test that three attempts are allowed by default."""
        request = GenerationRequest(prompt="p", schema=WEEKLY_PLAN_SCHEMA)
        assert request.max_attempts == 3

    @pytest.mark.parametrize("max_attempts", [0, -1])
    def test_rejects_non_positive_max_attempts(self, max_attempts: int) -> None:
        """Test that max_attempts below 1 is rejected at construction."""
        with pytest.raises(ValueError, match="max_attempts"):
            GenerationRequest(prompt="p", schema=WEEKLY_PLAN_SCHEMA, max_attempts=max_attempts)


class TestRunGuardedGeneration:
    """Tests for the run_guarded_generation entry point."""

    @pytest.mark.asyncio
    async def test_fenced_monday_plan_succeeds_on_first_call(self, stub_client, sleep_recorder) -> None:
        """Test that a fenced weekly plan validates with exactly one backend call."""
        client = stub_client(MONDAY_REPLY)

        plan = await run_guarded_generation(
            "Give me Monday's meals", WEEKLY_PLAN_SCHEMA, 3, client=client, base_delay=0.4, sleep=sleep_recorder
        )

        assert isinstance(plan, WeeklyPlan)
        assert plan.model_dump(by_alias=True, exclude_none=True) == json.loads(MONDAY_PAYLOAD)
        assert plan.meals["Monday"].breakfast.nutrition.calories == 300
        assert plan.meals["Monday"].lunch is None
        assert client.calls == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_success_short_circuits_remaining_attempts(self, stub_client, weekly_plan_json, sleep_recorder) -> None:
        """Test that no further calls are made once an attempt validates."""
        client = stub_client(weekly_plan_json, "never used")

        await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 5, client=client, sleep=sleep_recorder)

        assert client.calls == 1

    @pytest.mark.asyncio
    async def test_exhaustion_after_max_attempts(self, stub_client, sleep_recorder) -> None:
        """Test that persistent garbage output ends in ExhaustionError after exactly N calls."""
        client = stub_client("I'm sorry, I can't help with that.")

        with pytest.raises(ExhaustionError) as exc_info:
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=client, base_delay=0.4, sleep=sleep_recorder)

        assert client.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, ExtractionError)
        assert exc_info.value.last_error.attempt == 3
        assert exc_info.value.__cause__ is exc_info.value.last_error

    @pytest.mark.asyncio
    async def test_linear_backoff_between_attempts(self, stub_client, sleep_recorder) -> None:
        """Test that delays are base*1, base*2 and there is no delay after the last attempt."""
        client = stub_client("no json here")

        with pytest.raises(ExhaustionError):
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=client, base_delay=0.5, sleep=sleep_recorder)

        assert sleep_recorder.delays == pytest.approx([0.5, 1.0])

    @pytest.mark.asyncio
    async def test_prompt_escalates_after_first_failure(self, stub_client, weekly_plan_json, sleep_recorder) -> None:
        """Test that attempt 1 carries only the JSON-only instruction and later attempts add the retry note."""
        client = stub_client("garbage", "more garbage", weekly_plan_json)

        await run_guarded_generation("Plan my week", WEEKLY_PLAN_SCHEMA, 3, client=client, sleep=sleep_recorder)

        first, second, third = client.prompts
        assert first == f"Plan my week\n{JSON_ONLY_INSTRUCTION}"
        assert RETRY_INSTRUCTION not in first
        assert second == f"Plan my week\n{JSON_ONLY_INSTRUCTION}\n{RETRY_INSTRUCTION}"
        assert third == second

    @pytest.mark.asyncio
    async def test_recovers_from_generation_error(self, stub_client, alternatives_json, sleep_recorder) -> None:
        """Test that a backend failure is retried like any other attempt failure."""
        client = stub_client(GenerationError("503 from backend"), alternatives_json)

        result = await run_guarded_generation("p", ALTERNATIVES_ARRAY_SCHEMA, 3, client=client, sleep=sleep_recorder)

        assert isinstance(result, AlternativesArray)
        assert [meal.title for meal in result] == ["Veggie Omelette", "Smoothie Bowl"]
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_out_of_bounds_calories_are_retried(self, stub_client, meal_factory, sleep_recorder) -> None:
        """Test that a schema violation triggers a retry and a later valid reply wins."""
        bad = json.dumps([meal_factory("Feast", 6000)])
        good = json.dumps([meal_factory("Salad", 400)])
        client = stub_client(bad, good)

        result = await run_guarded_generation("p", ALTERNATIVES_ARRAY_SCHEMA, 3, client=client, sleep=sleep_recorder)

        assert result[0].title == "Salad"
        assert client.calls == 2

    @pytest.mark.asyncio
    async def test_empty_alternatives_exhaust_with_validation_error(self, stub_client, sleep_recorder) -> None:
        """Test that an empty array never validates."""
        client = stub_client("[]")

        with pytest.raises(ExhaustionError) as exc_info:
            await run_guarded_generation("p", ALTERNATIVES_ARRAY_SCHEMA, 2, client=client, sleep=sleep_recorder)

        assert isinstance(exc_info.value.last_error, SchemaValidationError)
        assert "validation" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_deeply_nested_output_is_retried_within_budget(self, stub_client, sleep_recorder) -> None:
        """Test that nesting too deep for the JSON parser counts as a failed attempt."""
        client = stub_client("[" * 100000 + "]" * 100000)

        with pytest.raises(ExhaustionError) as exc_info:
            await run_guarded_generation("p", ALTERNATIVES_ARRAY_SCHEMA, 2, client=client, sleep=sleep_recorder)

        assert exc_info.value.attempts == 2
        assert client.calls == 2
        assert isinstance(exc_info.value.last_error, ParseError)

    @pytest.mark.asyncio
    @patch.object(AlternativesArray, "model_validate", side_effect=RecursionError("maximum recursion depth exceeded"))
    async def test_recursion_during_validation_is_retried(self, mock_validate, stub_client, alternatives_json, sleep_recorder) -> None:
        """Test that a RecursionError raised while validating becomes a validation failure."""
        client = stub_client(alternatives_json)

        with pytest.raises(ExhaustionError) as exc_info:
            await run_guarded_generation("p", ALTERNATIVES_ARRAY_SCHEMA, 2, client=client, sleep=sleep_recorder)

        assert client.calls == 2
        assert isinstance(exc_info.value.last_error, SchemaValidationError)

    @pytest.mark.asyncio
    async def test_single_attempt_budget(self, stub_client, sleep_recorder) -> None:
        """Test that max_attempts=1 makes one call and never sleeps."""
        client = stub_client("nope")

        with pytest.raises(ExhaustionError) as exc_info:
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 1, client=client, sleep=sleep_recorder)

        assert exc_info.value.attempts == 1
        assert client.calls == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_invalid_max_attempts_makes_no_calls(self, stub_client) -> None:
        """Test that max_attempts=0 fails before the backend is touched."""
        client = stub_client("unused")

        with pytest.raises(ValueError):
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 0, client=client)

        assert client.calls == 0

    @pytest.mark.asyncio
    @patch("src.generation.orchestrator.create_generation_client")
    async def test_builds_default_client_when_none_given(self, mock_factory, stub_client, weekly_plan_json) -> None:
        """Test that the Gemini client factory is used when no client is injected."""
        client = stub_client(weekly_plan_json)
        mock_factory.return_value = client

        await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 1)

        mock_factory.assert_called_once_with()
        assert client.calls == 1

    @pytest.mark.asyncio
    async def test_failures_are_logged_with_attempt_index(self, stub_client, weekly_plan_json, sleep_recorder, caplog) -> None:
        """Test that each failed attempt emits a WARNING tagged with its attempt number."""
        client = stub_client("garbage", weekly_plan_json)

        with caplog.at_level(logging.INFO, logger="meal_planner"):
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=client, sleep=sleep_recorder)

        warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].attempt == 1
        assert "extraction" in warnings[0].getMessage()


class TestCancellation:
    """Tests that cancellation stops the run immediately."""

    @pytest.mark.asyncio
    async def test_cancel_during_generate_stops_all_attempts(self) -> None:
        """Test that cancelling while the backend call is pending propagates."""
        started = asyncio.Event()
        calls = []

        class HangingClient:
            async def generate(self, prompt: str) -> str:
                calls.append(prompt)
                started.set()
                await asyncio.Event().wait()
                return ""

        task = asyncio.create_task(
            run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=HangingClient(), base_delay=0)
        )
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retries(self, stub_client) -> None:
        """Test that cancellation raised by the backoff sleep is not swallowed."""
        client = stub_client("garbage")

        async def cancelled_sleep(delay: float) -> None:
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=client, sleep=cancelled_sleep)

        assert client.calls == 1


class TestGuardedGeneration:
    """Tests for the GuardedGeneration state machine."""

    @pytest.mark.asyncio
    async def test_state_transitions_to_succeeded(self, stub_client, weekly_plan_json, sleep_recorder) -> None:
        """Test PENDING -> ATTEMPTING -> SUCCEEDED."""
        request = GenerationRequest(prompt="p", schema=WEEKLY_PLAN_SCHEMA, max_attempts=3)
        machine = GuardedGeneration(request, stub_client("garbage", weekly_plan_json), sleep=sleep_recorder)
        assert machine.state is GenerationState.PENDING

        first = await machine.step()
        assert not first.ok
        assert machine.state is GenerationState.ATTEMPTING
        assert machine.attempt == 1

        second = await machine.step()
        assert second.ok
        assert machine.state is GenerationState.SUCCEEDED
        assert [outcome.attempt for outcome in machine.outcomes] == [1, 2]

    @pytest.mark.asyncio
    async def test_outcomes_record_failure_kinds(self, stub_client, meal_factory, sleep_recorder) -> None:
        """Test that each failure type is recorded with its attempt index."""
        request = GenerationRequest(prompt="p", schema=ALTERNATIVES_ARRAY_SCHEMA, max_attempts=4)
        client = stub_client(
            GenerationError("timeout"),
            "no brackets",
            '[{"title": "Broken",]',
            json.dumps([meal_factory(calories="unknown")]),
        )
        machine = GuardedGeneration(request, client, sleep=sleep_recorder)

        with pytest.raises(ExhaustionError):
            await machine.run()

        errors = [outcome.error for outcome in machine.outcomes]
        assert [type(error) for error in errors] == [
            GenerationError,
            ExtractionError,
            ParseError,
            SchemaValidationError,
        ]
        assert [error.attempt for error in errors] == [1, 2, 3, 4]
        assert machine.state is GenerationState.EXHAUSTED
        assert machine.last_error is errors[-1]

    @pytest.mark.asyncio
    async def test_instance_is_single_use(self, stub_client, weekly_plan_json) -> None:
        """Test that running or stepping a finished machine raises RuntimeError."""
        request = GenerationRequest(prompt="p", schema=WEEKLY_PLAN_SCHEMA)
        machine = GuardedGeneration(request, stub_client(weekly_plan_json))
        await machine.run()

        with pytest.raises(RuntimeError):
            await machine.run()
        with pytest.raises(RuntimeError):
            await machine.step()

    def test_backoff_delay_is_linear(self, stub_client) -> None:
        """Test that backoff_delay(k) == base_delay * k."""
        request = GenerationRequest(prompt="p", schema=WEEKLY_PLAN_SCHEMA)
        machine = GuardedGeneration(request, stub_client("x"), base_delay=0.25)
        assert machine.backoff_delay(1) == 0.25
        assert machine.backoff_delay(3) == 0.75

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_share_attempt_counters(self, stub_client, weekly_plan_json, alternatives_json, sleep_recorder) -> None:
        """Test that two overlapping runs each keep their own attempt count."""
        plan_client = stub_client("garbage", "garbage", weekly_plan_json)
        alt_client = stub_client(alternatives_json)

        plan, alternatives = await asyncio.gather(
            run_guarded_generation("p", WEEKLY_PLAN_SCHEMA, 3, client=plan_client, sleep=sleep_recorder),
            run_guarded_generation("a", ALTERNATIVES_ARRAY_SCHEMA, 3, client=alt_client, sleep=sleep_recorder),
        )

        assert plan_client.calls == 3
        assert alt_client.calls == 1
        assert len(alternatives) == 2
        assert "Monday" in plan.meals
