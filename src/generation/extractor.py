"""Recover a JSON document from free-form model text.

Gemini usually honours the JSON mime hint, but replies still arrive wrapped in
```json fences or with a sentence of preamble. `extract()` strips fences and,
when the remainder is not JSON on its own, falls back to the greedy span from
the first opening bracket to the last matching closing bracket.

Known limitation: when a reply holds several independent JSON blocks, only the
greedy span is considered, so the blocks are merged into one (usually
unparseable) candidate.
"""

import json
import re

from src.generation.errors import ExtractionError, ParseError
from src.utils.logger import logger

# ``` or ```json / ```JSON / ```javascript, with the tag optional
FENCE_PATTERN = re.compile(r"```[a-zA-Z]*")

_CLOSING = {"{": "}", "[": "]"}


def strip_fences(raw: str) -> str:
    """Remove every triple-backtick fence marker and trim whitespace."""
    return FENCE_PATTERN.sub("", raw).strip()


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    # RecursionError: pathologically deep nesting
    except (ValueError, RecursionError):
        return False
    return True


def _greedy_spans(text: str) -> list[str]:
    """Candidate spans ordered by which opening bracket appears first.

    Each span runs from the first `{` (or `[`) to the LAST `}` (or `]`), so
    nested objects such as nutrition blocks stay inside the span.
    """
    spans = []
    openers = sorted(
        (text.find(opener), opener) for opener in _CLOSING if text.find(opener) != -1
    )
    for start, opener in openers:
        end = text.rfind(_CLOSING[opener])
        if end > start:
            spans.append(text[start : end + 1])
    return spans


def extract(raw: str) -> str:
    """Isolate the JSON payload in a raw model reply.

    Args:
        raw: Full text returned by the generation backend.

    Returns:
        A candidate string that parses as JSON.

    Raises:
        ParseError: If a bracketed span exists but none parses (truncated or
            malformed JSON). ParseError is an ExtractionError.
        ExtractionError: If the text holds no bracketed span at all.
    """
    if not raw or not raw.strip():
        raise ExtractionError("Model output was empty", raw=raw or "")

    cleaned = strip_fences(raw)
    if _is_json(cleaned):
        return cleaned

    spans = _greedy_spans(cleaned)
    for span in spans:
        if _is_json(span):
            logger.debug(f"Extracted JSON span ({len(span)} of {len(cleaned)} chars)")
            return span

    if spans:
        raise ParseError("JSON-shaped output is not valid JSON", candidate=spans[0])
    raise ExtractionError("No JSON object or array found in model output", raw=raw)
