"""Retry orchestrator: turns an unreliable model call into a validated result.

Each attempt runs generate -> extract -> parse -> validate. Any per-attempt
failure is recorded and, while attempts remain, followed by a linear backoff
(`base_delay * k`) and a retry whose prompt carries a corrective instruction.
The first validated result ends the run. When every attempt fails the run
ends in ExhaustionError carrying the last failure.

Flow per GuardedGeneration instance:

    PENDING -> ATTEMPTING(1) -> ... -> ATTEMPTING(k) -> SUCCEEDED
                                                     -> EXHAUSTED

Instances are single-use and hold all attempt state, so concurrent callers
never share a counter. Cancellation while awaiting the backend or the backoff
propagates out of `run()` and no further attempts are made.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from src.generation.client import GenerationClient, create_generation_client
from src.generation.errors import ExhaustionError, GuardedGenerationError, ParseError
from src.generation.extractor import extract
from src.generation.schemas import SchemaDescriptor, validate
from src.prompts.prompts import compose_attempt_prompt
from src.utils.config import config
from src.utils.logger import logger

T = TypeVar("T", bound=BaseModel)

Sleep = Callable[[float], Awaitable[None]]


class GenerationState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class GenerationRequest(Generic[T]):
    """What to ask for, what shape to accept, and how many tries are allowed."""

    prompt: str
    schema: SchemaDescriptor[T]
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {self.max_attempts}")


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """Result of one attempt: a validated value or the failure that ended it."""

    attempt: int
    result: Optional[T] = None
    error: Optional[GuardedGenerationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GuardedGeneration(Generic[T]):
    """Single-use state machine driving one GenerationRequest to a terminal state."""

    def __init__(
        self,
        request: GenerationRequest[T],
        client: GenerationClient,
        base_delay: float = 0.4,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.request = request
        self.client = client
        self.base_delay = base_delay
        self._sleep = sleep
        self.state = GenerationState.PENDING
        self.attempt = 0
        self.outcomes: List[AttemptOutcome[T]] = []

    @property
    def last_error(self) -> Optional[GuardedGenerationError]:
        for outcome in reversed(self.outcomes):
            if outcome.error is not None:
                return outcome.error
        return None

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt `attempt` (linear)."""
        return self.base_delay * attempt

    async def _attempt(self, attempt: int) -> AttemptOutcome[T]:
        prompt = compose_attempt_prompt(self.request.prompt, attempt)
        try:
            raw = await self.client.generate(prompt)
            candidate = extract(raw)
            try:
                parsed = json.loads(candidate)
            except (ValueError, RecursionError) as e:
                raise ParseError(f"Candidate is not valid JSON: {e}", candidate=candidate) from e
            result = validate(parsed, self.request.schema)
        except GuardedGenerationError as e:
            e.attempt = attempt
            return AttemptOutcome(attempt=attempt, error=e)
        return AttemptOutcome(attempt=attempt, result=result)

    async def step(self) -> AttemptOutcome[T]:
        """Run the next attempt and advance the state.

        Raises:
            RuntimeError: If the machine already reached a terminal state.
        """
        if self.state in (GenerationState.SUCCEEDED, GenerationState.EXHAUSTED):
            raise RuntimeError(f"Generation already {self.state.value}")

        self.state = GenerationState.ATTEMPTING
        self.attempt += 1
        outcome = await self._attempt(self.attempt)
        self.outcomes.append(outcome)

        if outcome.ok:
            self.state = GenerationState.SUCCEEDED
            logger.info(
                f"{self.request.schema.name} validated on attempt {self.attempt}/{self.request.max_attempts}",
                extra={"attempt": self.attempt},
            )
        else:
            logger.warning(
                f"{self.request.schema.name} attempt {self.attempt}/{self.request.max_attempts} "
                f"failed ({outcome.error.kind}): {outcome.error}",
                extra={"attempt": self.attempt},
            )
            if self.attempt >= self.request.max_attempts:
                self.state = GenerationState.EXHAUSTED
        return outcome

    async def run(self) -> T:
        """Drive attempts until success or exhaustion.

        Returns:
            The first validated result.

        Raises:
            ExhaustionError: After `max_attempts` failed attempts.
            RuntimeError: If this instance was already run.
        """
        if self.state is not GenerationState.PENDING:
            raise RuntimeError("GuardedGeneration instances are single-use")

        while True:
            outcome = await self.step()
            if outcome.ok:
                return outcome.result
            if self.state is GenerationState.EXHAUSTED:
                logger.error(
                    f"{self.request.schema.name} generation exhausted after {self.attempt} attempts",
                    extra={"attempt": self.attempt},
                )
                raise ExhaustionError(self.attempt, self.last_error) from self.last_error
            await self._sleep(self.backoff_delay(self.attempt))


async def run_guarded_generation(
    prompt: str,
    schema: SchemaDescriptor[T],
    max_attempts: Optional[int] = None,
    *,
    client: Optional[GenerationClient] = None,
    base_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Generate, extract, parse and validate with bounded retries.

    Args:
        prompt: Task description; JSON-only and retry instructions are appended.
        schema: Shape the result must satisfy.
        max_attempts: Attempt budget (>= 1). Defaults to config.MAX_ATTEMPTS.
        client: Generation backend. Defaults to a Gemini client built from config.
        base_delay: Linear backoff unit in seconds. Defaults to config.RETRY_BASE_DELAY.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        A frozen, fully validated model instance.

    Raises:
        ExhaustionError: If every attempt failed.
        ValueError: If max_attempts < 1.
    """
    request = GenerationRequest(
        prompt=prompt,
        schema=schema,
        max_attempts=config.MAX_ATTEMPTS if max_attempts is None else max_attempts,
    )
    machine = GuardedGeneration(
        request,
        client=client or create_generation_client(),
        base_delay=config.RETRY_BASE_DELAY if base_delay is None else base_delay,
        sleep=sleep,
    )
    return await machine.run()
