"""
Response Normalizer Module

Turns free-form text from the generation service into JSON data.
Strategies, first success wins:
    1. strict parse of the whole text
    2. parse the span from the first '[' or '{' to the last matching closer
    3. log a bounded prefix of the text and return the caller's fallback

Never raises. A fallback result is a degraded success, not an error.

Example Usage:
    from src.utils.response_normalizer import normalize

    outcome = normalize(response_text, fallback=[])
    if outcome.is_degraded:
        ...  # still a usable (empty) result
    items = outcome.value
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

# Log at most this many characters of an unparseable response
DIAGNOSTIC_PREFIX_CHARS = 200

_CLOSERS = {"[": "]", "{": "}"}


@dataclass(frozen=True)
class Parsed:
    """Structured data recovered from the response."""

    value: Any
    strategy: str = "strict"

    @property
    def is_degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded:
    """Fallback default substituted for unparseable text."""

    value: Any
    reason: str = ""

    @property
    def is_degraded(self) -> bool:
        return True


NormalizedResponse = Union[Parsed, Degraded]


def _extract_bracketed(text: str) -> Optional[str]:
    """Substring from the first '[' or '{' to the last matching closer.

    Returns:
        The candidate substring, or None if no opener or no closer after it
    """
    starts = [i for i in (text.find("["), text.find("{")) if i != -1]
    if not starts:
        return None

    start = min(starts)
    end = text.rfind(_CLOSERS[text[start]])
    if end <= start:
        return None

    return text[start : end + 1]


def normalize(
    text: Optional[str],
    fallback: Any = None,
    correlation_id: Optional[str] = None,
) -> NormalizedResponse:
    """
    Parse response text into JSON data with two fallback strategies.

    Args:
        text: Raw response text (None is treated as empty)
        fallback: Value returned unchanged when both strategies fail
        correlation_id: Optional correlation ID for logging

    Returns:
        Parsed(value) on success, Degraded(fallback) otherwise
    """
    raw = text or ""

    try:
        return Parsed(json.loads(raw), strategy="strict")
    except (ValueError, RecursionError):
        pass

    candidate = _extract_bracketed(raw)
    if candidate is None:
        reason = "no JSON found in response"
    else:
        try:
            return Parsed(json.loads(candidate), strategy="extracted")
        except (ValueError, RecursionError) as e:
            reason = f"embedded JSON invalid: {e}"

    logger.warning(
        "Failed to parse JSON from response, using fallback",
        reason=reason,
        response=raw[:DIAGNOSTIC_PREFIX_CHARS],
        response_length=len(raw),
        correlation_id=correlation_id,
    )
    return Degraded(fallback, reason=reason)


def parse_response(text: Optional[str], fallback: Any = None) -> Any:
    """Convenience wrapper returning only the normalized value."""
    return normalize(text, fallback).value
