"""Exceptions raised by the booking core.

Slot conflicts are deliberately absent: the detector reports them as a
``ConflictResult`` value.
"""

from __future__ import annotations


class SlotbookError(Exception):
    """Base class for all per-request failures."""


class InvalidTimeFormat(SlotbookError, ValueError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid time {value!r}, expected HH:MM between 00:00 and 23:59")


class InvalidRange(SlotbookError, ValueError):
    pass


class InvalidTransition(SlotbookError):
    """*current* is ``None`` when the booking does not exist yet."""

    def __init__(self, current: str | None, requested: str) -> None:
        self.current = current
        self.requested = requested
        if current is None:
            super().__init__(f"Cannot create a booking as {requested}")
        else:
            super().__init__(f"Cannot move booking from {current} to {requested}")


class BookingNotFound(SlotbookError, LookupError):
    def __init__(self, booking_id: str) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id!r} not found")
