"""Text and date-range predicates shared by suggestions and history views."""

from __future__ import annotations

from datetime import date
from typing import Iterable


def matches_text(needle: str, fields: Iterable[str | None]) -> bool:
    """Case-insensitive substring match over any of `fields`. Empty needle matches."""

    text = (needle or "").strip().lower()
    if not text:
        return True
    return any(text in (field or "").lower() for field in fields)


def within_range(value: date, start: date | None = None, end: date | None = None) -> bool:
    """Inclusive on both ends; a missing bound is open."""

    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True
