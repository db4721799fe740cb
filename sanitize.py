"""Input clean-up applied to user text and numbers before they are persisted."""

import math
import re
from typing import Any, List, Optional

MAX_TEXT_LENGTH = 1000
MAX_CATEGORIES = 3

_UNSAFE = re.compile(r"[<>]")


def sanitize_input(value: Any) -> str:
    """Strip angle brackets and cap the length. Non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return _UNSAFE.sub("", value)[:MAX_TEXT_LENGTH]


def text_or_default(value: Any, default: str) -> str:
    # Missing, non-string or emptied-out input takes the default.
    return sanitize_input(value) or default


def _as_float(value: Any) -> float:
    """float(value), or 0 when it is unparsable, too large or not finite."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return number if math.isfinite(number) else 0


def finite_number(value: Any) -> float:
    """A real number that is finite, else 0. Strings are not parsed."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return _as_float(value)


def parse_coordinate(value: Any) -> float:
    """Parse a latitude or longitude leniently; anything unparsable is 0."""
    if isinstance(value, bool) or value is None:
        return 0
    return _as_float(value)


def parse_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    number = _as_float(value)
    return int(number) if number > 0 else 0


def first_categories(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [sanitize_input(c) for c in value[:MAX_CATEGORIES] if isinstance(c, str)]


def string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def clean_email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    email = value.strip()
    return email or None
