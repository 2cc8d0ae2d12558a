"""Domain models for venue bookings."""

from __future__ import annotations

import datetime as dt
import re
import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from slotbook.services.timemodel import format_minutes, span, to_minutes


class BookingStatus(StrEnum):
    PENDING = "Pending"
    RESERVED = "Reserved"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


COMMITTED_STATUSES = frozenset({BookingStatus.RESERVED, BookingStatus.CONFIRMED})


class TimelineEntryType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    CONFLICT_REJECTED = "conflict_rejected"
    DELETED = "deleted"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def new_booking_id() -> str:
    return "B" + uuid.uuid4().hex[:12]


def normalize_phone(raw: str | None) -> str:
    return re.sub(r"[^0-9]", "", raw or "")


def _check_time(value: str) -> str:
    return format_minutes(to_minutes(value))


class _CamelModel(BaseModel):
    """Python attribute names in snake_case, JSON keys in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Interval(_CamelModel):
    date: dt.date
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_wall_clock(cls, value: str) -> str:
        return _check_time(value)

    def minutes(self) -> tuple[int, int]:
        """Start and normalized end in minutes since midnight of ``date``."""
        return span(self.start_time, self.end_time)


class Booking(_CamelModel):
    id: str = Field(default_factory=new_booking_id)
    customer_name: str
    phone: str
    date: dt.date
    start_time: str
    end_time: str
    status: BookingStatus = BookingStatus.PENDING
    payment_status: str = "Unpaid"
    advance: float = 0
    comments: str = ""
    created_by: str | None = None
    created_at: dt.datetime = Field(default_factory=_utcnow)

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_wall_clock(cls, value: str) -> str:
        return _check_time(value)

    @property
    def is_committed(self) -> bool:
        return self.status in COMMITTED_STATUSES

    @property
    def interval(self) -> Interval:
        return Interval(date=self.date, start_time=self.start_time, end_time=self.end_time)


class BookingSummary(_CamelModel):
    """The subset of a booking reported alongside a conflict."""

    id: str
    date: dt.date
    start_time: str
    end_time: str
    status: BookingStatus

    @classmethod
    def of(cls, booking: Booking) -> BookingSummary:
        return cls(
            id=booking.id,
            date=booking.date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
        )


class ConflictResult(_CamelModel):
    ok: bool
    conflict: BookingSummary | None = None

    @classmethod
    def clear(cls) -> ConflictResult:
        return cls(ok=True)

    @classmethod
    def against(cls, booking: Booking) -> ConflictResult:
        return cls(ok=False, conflict=BookingSummary.of(booking))


class BookingWriteResult(BaseModel):
    """Outcome of a gated write: either the stored booking or the conflict that stopped it."""

    booking: Booking | None = None
    conflict: ConflictResult | None = None
    created: bool = False

    @property
    def accepted(self) -> bool:
        return self.booking is not None


class FreeWindow(_CamelModel):
    start_min: int
    end_min: int


class DayAvailability(_CamelModel):
    date: dt.date
    free: list[FreeWindow] = Field(default_factory=list)


class TimelineEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    booking_id: str
    timestamp: dt.datetime = Field(default_factory=_utcnow)
    type: TimelineEntryType
    payload: dict = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class BookingRequest(_CamelModel):
    """Create-or-update payload. Fields left unset keep their stored value on update."""

    id: str | None = None
    customer_name: str = Field(min_length=1)
    phone: str
    date: dt.date
    start_time: str
    end_time: str
    status: BookingStatus | None = None
    payment_status: str | None = None
    advance: float | None = None
    comments: str | None = None
    created_by: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _valid_wall_clock(cls, value: str) -> str:
        return _check_time(value)

    @field_validator("phone")
    @classmethod
    def _digits_only(cls, value: str) -> str:
        digits = normalize_phone(value)
        if not digits:
            raise ValueError("phone must contain at least one digit")
        return digits


class StatusChangeRequest(BaseModel):
    status: BookingStatus


class ConflictCheckRequest(Interval):
    exclude_id: str | None = None
