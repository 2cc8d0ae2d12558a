"""Tests for the conflict-detection service."""

import datetime as dt

from slotbook.domain.models import Booking, BookingStatus, Interval
from slotbook.services.conflicts import check_conflict, find_conflicts, overlaps, slots_collide

DAY = dt.date(2024, 1, 1)


def _make_booking(
    start: str,
    end: str,
    status: BookingStatus = BookingStatus.CONFIRMED,
    date: dt.date = DAY,
    **overrides,
) -> Booking:
    return Booking(
        customer_name="Existing",
        phone="0770000000",
        date=date,
        start_time=start,
        end_time=end,
        status=status,
        **overrides,
    )


def _interval(start: str, end: str, date: dt.date = DAY) -> Interval:
    return Interval(date=date, start_time=start, end_time=end)


def test_overlaps_is_strict():
    assert overlaps(600, 720, 700, 800)
    assert not overlaps(600, 720, 720, 780)


def test_no_overlap():
    """Bookings that don't overlap should not be returned as conflicts."""
    existing = [_make_booking("08:00", "09:00")]
    assert find_conflicts(_interval("10:00", "11:00"), existing) == []


def test_partial_overlap():
    """A booking that partially overlaps should be returned as a conflict."""
    existing = [_make_booking("09:00", "10:30")]
    conflicts = find_conflicts(_interval("10:00", "11:00"), existing)
    assert len(conflicts) == 1
    assert conflicts[0].start_time == "09:00"


def test_touching_is_not_conflicting():
    """A 10:00-12:00 booking does not block 12:00-13:00."""
    existing = [_make_booking("10:00", "12:00")]
    result = check_conflict(_interval("12:00", "13:00"), existing)
    assert result.ok
    assert result.conflict is None


def test_overnight_booking_blocks_early_hours_of_same_date():
    """22:00-02:00 spills into 00:00-02:00, so 01:00-03:00 collides."""
    existing = [_make_booking("22:00", "02:00")]
    result = check_conflict(_interval("01:00", "03:00"), existing)
    assert not result.ok
    assert result.conflict.id == existing[0].id


def test_overnight_candidate_collides_with_early_booking():
    existing = [_make_booking("00:30", "01:30")]
    assert not check_conflict(_interval("23:00", "01:00"), existing).ok


def test_two_overnight_bookings_collide():
    existing = [_make_booking("21:00", "01:00")]
    assert not check_conflict(_interval("23:30", "00:30"), existing).ok


def test_overnight_touching_spill_is_not_conflicting():
    existing = [_make_booking("22:00", "02:00")]
    assert check_conflict(_interval("02:00", "04:00"), existing).ok


def test_full_day_booking_blocks_everything():
    existing = [_make_booking("06:00", "06:00")]
    assert not check_conflict(_interval("05:00", "05:30"), existing).ok
    assert not check_conflict(_interval("18:00", "19:00"), existing).ok


def test_other_dates_are_ignored():
    existing = [_make_booking("10:00", "12:00", date=DAY + dt.timedelta(days=1))]
    assert check_conflict(_interval("10:00", "12:00"), existing).ok


def test_uncommitted_bookings_are_ignored():
    existing = [
        _make_booking("10:00", "12:00", status=BookingStatus.PENDING),
        _make_booking("10:00", "12:00", status=BookingStatus.CANCELLED),
    ]
    assert check_conflict(_interval("10:30", "11:00"), existing).ok


def test_reserved_bookings_block():
    existing = [_make_booking("10:00", "12:00", status=BookingStatus.RESERVED)]
    assert not check_conflict(_interval("11:00", "13:00"), existing).ok


def test_excluded_booking_never_conflicts_with_itself():
    existing = [_make_booking("10:00", "12:00", id="B1")]
    assert check_conflict(_interval("11:00", "12:30"), existing, exclude_id="B1").ok


def test_slots_collide_is_symmetric():
    pairs = [((1320, 1560), (60, 180)), ((600, 720), (720, 780)), ((0, 1440), (300, 400))]
    for a, b in pairs:
        assert slots_collide(a, b) == slots_collide(b, a)
