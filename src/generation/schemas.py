"""Schema descriptors and the validation entry point.

A SchemaDescriptor names a Pydantic model and carries it to `validate()`,
which turns a parsed JSON value into a frozen model instance or raises
SchemaValidationError with one FieldIssue per failed field.
"""

from dataclasses import dataclass
from typing import Any, Generic, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.generation.errors import FieldIssue, SchemaValidationError
from src.models.models import AlternativesArray, Nutrition, WeeklyPlan

T = TypeVar("T", bound=BaseModel)

# Pydantic error types grouped into the four failure kinds callers see
_MISSING = {"missing"}
_OUT_OF_BOUNDS = {
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
    "too_short",
    "too_long",
    "string_too_short",
    "string_too_long",
}
_COERCION = {"coercion_failed"}


@dataclass(frozen=True)
class SchemaDescriptor(Generic[T]):
    """Declarative contract for one shape of model output."""

    name: str
    model: Type[T]


WEEKLY_PLAN_SCHEMA: SchemaDescriptor[WeeklyPlan] = SchemaDescriptor("WeeklyPlan", WeeklyPlan)
ALTERNATIVES_ARRAY_SCHEMA: SchemaDescriptor[AlternativesArray] = SchemaDescriptor(
    "AlternativesArray", AlternativesArray
)
NUTRITION_SCHEMA: SchemaDescriptor[Nutrition] = SchemaDescriptor("Nutrition", Nutrition)


def _issue_kind(error_type: str) -> str:
    if error_type in _MISSING:
        return "missing"
    if error_type in _OUT_OF_BOUNDS:
        return "out_of_bounds"
    if error_type in _COERCION:
        return "coercion_failed"
    return "wrong_type"


def _issue_path(loc: tuple) -> str:
    """Render a Pydantic location tuple as `meals.Monday.breakfast.ingredients` or `[0].title`."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def issues_from_pydantic(error: PydanticValidationError) -> list[FieldIssue]:
    """Translate a Pydantic ValidationError into FieldIssue records."""
    return [
        FieldIssue(path=_issue_path(item["loc"]), kind=_issue_kind(item["type"]), message=item["msg"])
        for item in error.errors()
    ]


def validate(candidate: Any, schema: SchemaDescriptor[T]) -> T:
    """Validate an already-parsed JSON value against a schema.

    Args:
        candidate: Output of a general JSON parse (dict, list or primitive).
        schema: The descriptor naming the expected shape.

    Returns:
        A frozen model instance whose numeric fields are real numbers.

    Raises:
        SchemaValidationError: With one FieldIssue per failed field.
    """
    try:
        return schema.model.model_validate(candidate)
    except PydanticValidationError as e:
        raise SchemaValidationError(schema.name, issues_from_pydantic(e)) from e
    except RecursionError as e:
        issue = FieldIssue(path="", kind="wrong_type", message="value is nested too deeply")
        raise SchemaValidationError(schema.name, [issue]) from e
