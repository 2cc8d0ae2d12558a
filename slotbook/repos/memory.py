"""In-memory repositories for bookings and their timelines."""

from __future__ import annotations

import datetime as dt
from threading import RLock

from slotbook.domain.models import (
    COMMITTED_STATUSES,
    Booking,
    BookingStatus,
    TimelineEntry,
)


class BookingRepository:
    """Dict-backed store for Booking instances, keyed by id.

    Reads hand out copies so callers never mutate stored state without
    going through ``add``.
    """

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}
        self._lock = RLock()

    def add(self, booking: Booking) -> None:
        with self._lock:
            self._store[booking.id] = booking.model_copy()

    def get(self, booking_id: str) -> Booking | None:
        with self._lock:
            booking = self._store.get(booking_id)
            return booking.model_copy() if booking is not None else None

    def delete(self, booking_id: str) -> bool:
        with self._lock:
            return self._store.pop(booking_id, None) is not None

    def search(
        self,
        from_date: dt.date | None = None,
        to_date: dt.date | None = None,
        status: BookingStatus | None = None,
        phone: str | None = None,
    ) -> list[Booking]:
        """Return bookings matching every given filter, sorted by date then start time.

        *phone* matches either the booking's phone or its ``created_by``.
        """
        with self._lock:
            rows = [b.model_copy() for b in self._store.values()]
        if from_date is not None:
            rows = [b for b in rows if b.date >= from_date]
        if to_date is not None:
            rows = [b for b in rows if b.date <= to_date]
        if status is not None:
            rows = [b for b in rows if b.status == status]
        if phone:
            rows = [b for b in rows if phone in (b.phone, b.created_by)]
        return sorted(rows, key=lambda b: (b.date, b.start_time))

    def find_committed(self, date: dt.date) -> list[Booking]:
        return self.find_committed_between(date, date)

    def find_committed_between(self, from_date: dt.date, to_date: dt.date) -> list[Booking]:
        with self._lock:
            return [
                b.model_copy()
                for b in self._store.values()
                if b.status in COMMITTED_STATUSES and from_date <= b.date <= to_date
            ]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class TimelineRepository:
    """List-backed store for TimelineEntry instances."""

    def __init__(self) -> None:
        self._entries: list[TimelineEntry] = []
        self._lock = RLock()

    def add(self, entry: TimelineEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def list_for_booking(self, booking_id: str) -> list[TimelineEntry]:
        with self._lock:
            entries = [e for e in self._entries if e.booking_id == booking_id]
        return sorted(entries, key=lambda e: e.timestamp)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ---------------------------------------------------------------------------
# Seed data: a few bookings useful for trying the API by hand
# ---------------------------------------------------------------------------


def _seed_bookings(repo: BookingRepository) -> None:
    today = dt.date.today()
    tomorrow = today + dt.timedelta(days=1)

    repo.add(
        Booking(
            customer_name="Asha Perera",
            phone="0771234567",
            date=today,
            start_time="10:00",
            end_time="12:00",
            status=BookingStatus.CONFIRMED,
            payment_status="Advance paid",
            advance=2000,
            created_by="0771234567",
        )
    )
    repo.add(
        Booking(
            customer_name="Late night league",
            phone="0719876543",
            date=today,
            start_time="22:00",
            end_time="01:00",
            status=BookingStatus.RESERVED,
            created_by="0719876543",
        )
    )
    repo.add(
        Booking(
            customer_name="Nimal Silva",
            phone="0701112223",
            date=tomorrow,
            start_time="18:00",
            end_time="19:30",
            created_by="0701112223",
        )
    )


def create_booking_repository(seed: bool = False) -> BookingRepository:
    """Return a BookingRepository, optionally pre-loaded with sample data."""
    repo = BookingRepository()
    if seed:
        _seed_bookings(repo)
    return repo
