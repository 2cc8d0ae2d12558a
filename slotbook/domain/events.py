"""Domain events emitted during the booking lifecycle."""

from __future__ import annotations

from pydantic import BaseModel

from slotbook.domain.models import BookingStatus


class BookingEvent(BaseModel):
    """Base of every event about a single booking."""

    booking_id: str


class BookingCreated(BookingEvent):
    """Fired when a new Booking is persisted."""

    status: BookingStatus


class BookingUpdated(BookingEvent):
    """Fired when stored fields of an existing booking change."""

    changed_fields: list[str]


class BookingStatusChanged(BookingEvent):
    previous: BookingStatus
    current: BookingStatus


class ConflictRejected(BookingEvent):
    """Fired when a write into the committed set is refused for overlapping."""

    conflicting_booking_id: str
    attempted_status: BookingStatus


class BookingDeleted(BookingEvent):
    pass
