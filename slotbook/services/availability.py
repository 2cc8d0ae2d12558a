"""Service for computing the free parts of the daily operating window."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Iterator

from dateutil.rrule import DAILY, rrule

from slotbook.domain.errors import InvalidRange
from slotbook.domain.models import Booking, FreeWindow
from slotbook.services.timemodel import normalize_end, to_minutes

Span = tuple[int, int]


def iter_dates(from_date: dt.date, to_date: dt.date) -> Iterator[dt.date]:
    """Yield every calendar date in ``[from_date, to_date]``."""
    if from_date > to_date:
        return
    for occurrence in rrule(DAILY, dtstart=from_date, until=to_date):
        yield occurrence.date()


def clip(span: Span, window: Span) -> Span | None:
    """Clip *span* to *window*; ``None`` when they do not overlap at all."""
    start = max(span[0], window[0])
    end = min(span[1], window[1])
    if start >= end:
        return None
    return start, end


def merge_spans(spans: Iterable[Span]) -> list[Span]:
    """Merge overlapping and touching spans into sorted occupied coverage.

    Unlike conflict detection, a span starting exactly where the previous one
    ends is merged.
    """
    merged: list[list[int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return [(start, end) for start, end in merged]


def subtract(window: Span, occupied: list[Span]) -> list[Span]:
    """Return the parts of *window* not covered by the merged *occupied* spans."""
    free: list[Span] = []
    cursor, window_end = window
    for start, end in occupied:
        if start > cursor:
            free.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def free_windows(
    from_date: dt.date,
    to_date: dt.date,
    day_start: str,
    day_end: str,
    committed: Iterable[Booking],
    max_days: int | None = None,
) -> dict[dt.date, list[FreeWindow]]:
    """Compute per-date free windows after subtracting committed bookings.

    The window ``day_start``-``day_end`` follows the same wraparound rule as
    bookings, so ``18:00``-``02:00`` is an overnight window. Returned minute
    offsets are relative to midnight of each date and may exceed 1440.

    An inverted range yields an empty mapping. Raises ``InvalidRange`` when the
    range spans more than *max_days* dates.
    """
    if from_date > to_date:
        return {}
    if max_days is not None and (to_date - from_date).days + 1 > max_days:
        raise InvalidRange(
            f"Date range {from_date}..{to_date} exceeds the {max_days}-day limit"
        )

    window_start = to_minutes(day_start)
    window = (window_start, normalize_end(window_start, to_minutes(day_end)))

    occupied_by_date: dict[dt.date, list[Span]] = {}
    for booking in committed:
        if not booking.is_committed or not from_date <= booking.date <= to_date:
            continue
        clipped = clip(booking.interval.minutes(), window)
        if clipped is not None:
            occupied_by_date.setdefault(booking.date, []).append(clipped)

    result: dict[dt.date, list[FreeWindow]] = {}
    for day in iter_dates(from_date, to_date):
        occupied = merge_spans(occupied_by_date.get(day, []))
        result[day] = [
            FreeWindow(start_min=start, end_min=end)
            for start, end in subtract(window, occupied)
        ]
    return result
