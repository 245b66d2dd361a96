"""Shared utilities used across the orchestration core and agents."""

import re
from typing import Any

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number into E.164-like form with a leading +.

    Everything except digits is stripped and a missing + is added.

    Examples:
        >>> normalize_phone("4155552671")
        '+4155552671'
        >>> normalize_phone("+1 (415) 555-2671")
        '+14155552671'
    """
    digits = re.sub(r"[^\d]", "", value.strip())
    if not digits:
        return ""
    return "+" + digits


def is_e164(value: str) -> bool:
    """Check a phone number against the E.164 pattern."""
    return bool(E164_PATTERN.match(value or ""))


def is_empty(value: Any) -> bool:
    """True for values a caller did not meaningfully supply."""
    return value is None or value == "" or value == [] or value == {}


def first_non_empty(*values: Any) -> Any:
    """Return the first value that is not empty, or None."""
    for value in values:
        if not is_empty(value):
            return value
    return None
