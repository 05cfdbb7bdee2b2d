"""Exception hierarchy for guarded generation and the services built on it.

Per-attempt errors (GenerationError, ExtractionError, ParseError,
SchemaValidationError) are handled inside the retry orchestrator. Only
ExhaustionError leaves it.
"""

from dataclasses import dataclass
from typing import Optional


class MealPlannerError(Exception):
    """Base class for all service errors."""


class GuardedGenerationError(MealPlannerError):
    """A single attempt failed. `attempt` is set by the orchestrator."""

    kind = "attempt"

    def __init__(self, message: str, attempt: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempt = attempt


class GenerationError(GuardedGenerationError):
    """The backend call failed (transport, quota, backend-side rejection, empty reply)."""

    kind = "generation"


class ExtractionError(GuardedGenerationError):
    """No JSON-shaped substring could be located in the model output."""

    kind = "extraction"

    def __init__(self, message: str, raw: str = "", attempt: Optional[int] = None) -> None:
        super().__init__(message, attempt)
        self.raw = raw


class ParseError(ExtractionError):
    """A JSON-shaped candidate was found but is not syntactically valid JSON."""

    kind = "parse"

    def __init__(self, message: str, candidate: str = "", attempt: Optional[int] = None) -> None:
        super().__init__(message, raw=candidate, attempt=attempt)
        self.candidate = candidate


@dataclass(frozen=True)
class FieldIssue:
    """One failed field in a schema check.

    kind is one of: missing, wrong_type, out_of_bounds, coercion_failed.
    """

    path: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.kind} ({self.message})"


class SchemaValidationError(GuardedGenerationError):
    """Parsed JSON does not satisfy the schema."""

    kind = "validation"

    def __init__(
        self,
        schema_name: str,
        issues: list[FieldIssue],
        attempt: Optional[int] = None,
    ) -> None:
        summary = "; ".join(str(issue) for issue in issues[:5])
        if len(issues) > 5:
            summary += f"; ... ({len(issues) - 5} more)"
        super().__init__(f"{schema_name} validation failed: {summary}", attempt)
        self.schema_name = schema_name
        self.issues = issues


class ExhaustionError(MealPlannerError):
    """Every permitted attempt failed. Carries the last failure and the attempt count."""

    def __init__(self, attempts: int, last_error: Optional[GuardedGenerationError]) -> None:
        kind = last_error.kind if last_error else "unknown"
        super().__init__(
            f"Failed to get valid JSON from Gemini after {attempts} attempts "
            f"(last failure: {kind}): {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class RateLimitExceeded(MealPlannerError):
    """Raised by the rate limiter when a (subject, action) window is full."""

    def __init__(self, max_requests: int, window_seconds: int, retry_after_seconds: int) -> None:
        super().__init__(
            f"Rate limit exceeded. You can make {max_requests} requests per "
            f"{window_seconds} seconds. Try again in {retry_after_seconds} seconds."
        )
        self.retry_after_seconds = retry_after_seconds


class MealSwapError(MealPlannerError):
    """Meal alternatives could not be produced, or a swap request was invalid."""
