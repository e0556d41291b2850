"""Lenient coercion of raw query-string values.

Search parameters arrive as strings (or lists of strings) from the query string.
Anything that cannot be interpreted is treated as absent rather than rejected.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

QUERY_MAX_LENGTH = 100
TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def _squash_whitespace(text: str) -> str:
    return " ".join(text.split())


def clean_text(value: Any, *, max_length: int = QUERY_MAX_LENGTH) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
        if value is None:
            return None
    cleaned = _squash_whitespace(str(value).strip())
    if not cleaned:
        return None
    return cleaned[:max_length]


def coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_int(value: Any) -> int | None:
    number = coerce_float(value)
    if number is None:
        return None
    return int(number)


def coerce_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


def split_tags(value: Any) -> tuple[str, ...]:
    """Accept repeated params or comma-separated values; lowercase and dedupe in order."""
    if value is None:
        return ()
    raw: Iterable[Any] = value if isinstance(value, (list, tuple, set)) else [value]
    tags: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        for part in item.split(","):
            tag = part.strip().lower()
            if tag and tag not in tags:
                tags.append(tag)
    return tuple(tags)


def valid_latitude(value: float | None) -> bool:
    return value is not None and -90.0 <= value <= 90.0


def valid_longitude(value: float | None) -> bool:
    return value is not None and -180.0 <= value <= 180.0


__all__ = [
    "QUERY_MAX_LENGTH",
    "clean_text",
    "coerce_bool",
    "coerce_float",
    "coerce_int",
    "split_tags",
    "valid_latitude",
    "valid_longitude",
]
