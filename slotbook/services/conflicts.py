"""Service for detecting time-slot conflicts between bookings."""

from __future__ import annotations

from collections.abc import Iterable

from slotbook.domain.models import Booking, ConflictResult, Interval
from slotbook.services.timemodel import MINUTES_PER_DAY


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Return True if two already-normalized minute ranges overlap.

    Overlap rule: max(starts) < min(ends).
    Exact boundary touches (end == start) are NOT considered conflicts.
    """
    return max(a_start, b_start) < min(a_end, b_end)


def slots_collide(a: tuple[int, int], b: tuple[int, int]) -> bool:
    """Compare two same-date spans, including the after-midnight spill of either.

    An overnight span such as 22:00-02:00 also occupies 00:00-02:00, so it is
    compared once as-is and once with the other span shifted a day later.
    """
    a_start, a_end = a
    b_start, b_end = b
    return (
        overlaps(a_start, a_end, b_start, b_end)
        or overlaps(a_start, a_end, b_start + MINUTES_PER_DAY, b_end + MINUTES_PER_DAY)
        or overlaps(a_start + MINUTES_PER_DAY, a_end + MINUTES_PER_DAY, b_start, b_end)
    )


def find_conflicts(
    candidate: Interval,
    committed: Iterable[Booking],
    exclude_id: str | None = None,
) -> list[Booking]:
    """Return committed bookings on the candidate's date that collide with it.

    The booking identified by *exclude_id* is skipped so an update never
    conflicts with its own stored version.
    """
    candidate_span = candidate.minutes()
    return [
        booking
        for booking in committed
        if booking.date == candidate.date
        and booking.id != exclude_id
        and booking.is_committed
        and slots_collide(candidate_span, booking.interval.minutes())
    ]


def check_conflict(
    candidate: Interval,
    committed: Iterable[Booking],
    exclude_id: str | None = None,
) -> ConflictResult:
    """Return ok, or a conflict naming one offending booking.

    Which booking is reported when several collide is not guaranteed.
    """
    conflicts = find_conflicts(candidate, committed, exclude_id)
    if conflicts:
        return ConflictResult.against(conflicts[0])
    return ConflictResult.clear()
