"""Wall-clock conversion and the overnight wraparound rule."""

from __future__ import annotations

import re

from slotbook.domain.errors import InvalidTimeFormat

MINUTES_PER_DAY = 24 * 60

_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")


def to_minutes(value: str) -> int:
    """Convert an ``HH:MM`` string into minutes since midnight.

    Raises ``InvalidTimeFormat`` for anything outside ``00:00`` to ``23:59``.
    """
    match = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidTimeFormat(value)
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormat(value)
    return hours * 60 + minutes


def normalize_end(start_min: int, end_min: int) -> int:
    """Push an end that is not after its start onto the following day.

    ``start == end`` therefore spans a full 24 hours.
    """
    if end_min <= start_min:
        return end_min + MINUTES_PER_DAY
    return end_min


def span(start: str, end: str) -> tuple[int, int]:
    """Return the normalized ``(start_min, end_min)`` pair for two wall-clock values."""
    start_min = to_minutes(start)
    return start_min, normalize_end(start_min, to_minutes(end))


def format_minutes(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
