"""Booking lifecycle: state transitions, the conflict gate and serialized writes."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock, RLock

from slotbook.domain.bus import EventBus
from slotbook.domain.errors import BookingNotFound, InvalidRange, InvalidTransition
from slotbook.domain.events import (
    BookingCreated,
    BookingDeleted,
    BookingStatusChanged,
    BookingUpdated,
    ConflictRejected,
)
from slotbook.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    BookingWriteResult,
    ConflictResult,
    FreeWindow,
    Interval,
    new_booking_id,
)
from slotbook.repos.memory import BookingRepository
from slotbook.services.availability import free_windows
from slotbook.services.conflicts import check_conflict
from slotbook.services.timemodel import to_minutes

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.RESERVED, BookingStatus.CONFIRMED, BookingStatus.CANCELLED}
    ),
    BookingStatus.RESERVED: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


def can_transition(current: BookingStatus, requested: BookingStatus) -> bool:
    """Staying put is an edit and is allowed for every state except Cancelled."""
    if current == requested:
        return current != BookingStatus.CANCELLED
    return requested in ALLOWED_TRANSITIONS[current]


def requires_conflict_check(status: BookingStatus, check_reserved: bool = False) -> bool:
    """Whether a write resulting in *status* must pass the conflict detector.

    Only Confirmed is gated by default even though Reserved bookings block
    others; *check_reserved* extends the gate to Reserved.
    """
    if status == BookingStatus.CONFIRMED:
        return True
    return check_reserved and status == BookingStatus.RESERVED


class DateLockRegistry:
    """One re-entrant lock per calendar date, alive only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[dt.date, RLock] = {}
        self._users: dict[dt.date, int] = {}
        self._guard = Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, dates: list[dt.date]) -> list[RLock]:
        with self._guard:
            for date in dates:
                self._users[date] = self._users.get(date, 0) + 1
            return [self._locks.setdefault(date, RLock()) for date in dates]

    def _checkin(self, dates: list[dt.date]) -> None:
        with self._guard:
            for date in dates:
                self._users[date] -= 1
                if not self._users[date]:
                    del self._users[date]
                    del self._locks[date]

    @contextmanager
    def hold(self, *dates: dt.date) -> Iterator[None]:
        """Hold the locks of all *dates*, acquired in date order."""
        ordered = sorted(set(dates))
        locks = self._checkout(ordered)
        acquired: list[RLock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            self._checkin(ordered)


class BookingService:
    """Create, edit and transition bookings without ever double-booking a slot.

    Every write holds the locks of the dates it touches from the
    committed-set read through to the repository write, so two concurrent
    confirmations for the same date cannot both pass the check.
    """

    def __init__(
        self,
        repo: BookingRepository,
        bus: EventBus,
        locks: DateLockRegistry | None = None,
        check_reserved: bool = False,
        max_range_days: int = 366,
    ) -> None:
        self.repo = repo
        self.bus = bus
        self.locks = locks or DateLockRegistry()
        self.check_reserved = check_reserved
        self.max_range_days = max_range_days

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def evaluate_conflict(self, candidate: Interval, exclude_id: str | None = None) -> ConflictResult:
        return check_conflict(candidate, self.repo.find_committed(candidate.date), exclude_id)

    def compute_availability(
        self,
        from_date: dt.date,
        to_date: dt.date,
        day_start: str,
        day_end: str,
    ) -> dict[dt.date, list[FreeWindow]]:
        """Free windows per date in ``[from_date, to_date]`` within the daily window.

        Raises ``InvalidTimeFormat`` or ``InvalidRange`` before touching the repository.
        """
        to_minutes(day_start)
        to_minutes(day_end)
        if from_date > to_date:
            raise InvalidRange(f"from date {from_date} is after to date {to_date}")
        days = (to_date - from_date).days + 1
        if days > self.max_range_days:
            raise InvalidRange(
                f"Date range of {days} days exceeds the {self.max_range_days}-day limit"
            )
        committed = self.repo.find_committed_between(from_date, to_date)
        return free_windows(
            from_date, to_date, day_start, day_end, committed, max_days=self.max_range_days
        )

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repo.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def list_bookings(
        self,
        from_date: dt.date | None = None,
        to_date: dt.date | None = None,
        status: BookingStatus | None = None,
        phone: str | None = None,
    ) -> list[Booking]:
        return self.repo.search(from_date=from_date, to_date=to_date, status=status, phone=phone)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def create_or_update(self, request: BookingRequest) -> BookingWriteResult:
        """Store *request* as a new booking, or apply it to the booking with the same id."""
        booking_id = request.id or new_booking_id()
        while True:
            current = self.repo.get(booking_id)
            dates = [request.date] if current is None else [request.date, current.date]
            with self.locks.hold(*dates):
                existing = self.repo.get(booking_id)
                if existing is None and current is None:
                    return self._create(booking_id, request)
                if existing is not None and current is not None and existing.date == current.date:
                    return self._update(existing, request)
            # The booking appeared, vanished or moved before the locks were held.

    def change_status(self, booking_id: str, status: BookingStatus) -> BookingWriteResult:
        while True:
            date = self.get_booking(booking_id).date
            with self.locks.hold(date):
                # Re-read under the lock; the booking may have moved or gone.
                existing = self.get_booking(booking_id)
                if existing.date != date:
                    continue
                if not can_transition(existing.status, status):
                    raise InvalidTransition(existing.status, status)

                updated = existing.model_copy(update={"status": status})
                rejected = self._gate(updated)
                if rejected is not None:
                    return rejected
                self._replace(updated)
                break

        if existing.status != status:
            self.bus.publish(
                BookingStatusChanged(
                    booking_id=booking_id, previous=existing.status, current=status
                )
            )
        return BookingWriteResult(booking=updated)

    def delete_booking(self, booking_id: str) -> None:
        while True:
            date = self.get_booking(booking_id).date
            with self.locks.hold(date):
                existing = self.get_booking(booking_id)
                if existing.date != date:
                    continue
                self.repo.delete(booking_id)
                break
        self.bus.publish(BookingDeleted(booking_id=booking_id))

    def _create(self, booking_id: str, request: BookingRequest) -> BookingWriteResult:
        if request.status == BookingStatus.CANCELLED:
            raise InvalidTransition(None, request.status)
        booking = Booking(
            id=booking_id,
            customer_name=request.customer_name,
            phone=request.phone,
            date=request.date,
            start_time=request.start_time,
            end_time=request.end_time,
            status=request.status or BookingStatus.PENDING,
            payment_status=request.payment_status or "Unpaid",
            advance=request.advance or 0,
            comments=request.comments or "",
            created_by=request.created_by or request.phone,
        )
        rejected = self._gate(booking)
        if rejected is not None:
            return rejected

        self.repo.add(booking)
        self.bus.publish(BookingCreated(booking_id=booking.id, status=booking.status))
        return BookingWriteResult(booking=booking, created=True)

    def _update(self, existing: Booking, request: BookingRequest) -> BookingWriteResult:
        updates = {
            name: getattr(request, name)
            for name in request.model_fields_set
            if name != "id" and getattr(request, name) is not None
        }
        status = updates.get("status", existing.status)
        if not can_transition(existing.status, status):
            raise InvalidTransition(existing.status, status)

        updated = existing.model_copy(update=updates)
        rejected = self._gate(updated)
        if rejected is not None:
            return rejected

        self._replace(updated)
        changed = sorted(
            name
            for name, value in updates.items()
            if name != "status" and getattr(existing, name) != value
        )
        self.bus.publish(BookingUpdated(booking_id=updated.id, changed_fields=changed))
        if existing.status != updated.status:
            self.bus.publish(
                BookingStatusChanged(
                    booking_id=updated.id, previous=existing.status, current=updated.status
                )
            )
        return BookingWriteResult(booking=updated)

    def _replace(self, booking: Booking) -> None:
        """Overwrite a stored booking; one deleted meanwhile is not brought back."""
        if self.repo.get(booking.id) is None:
            raise BookingNotFound(booking.id)
        self.repo.add(booking)

    def _gate(self, booking: Booking) -> BookingWriteResult | None:
        """Run the conflict detector if *booking*'s status requires it.

        Must be called with the lock of ``booking.date`` held. Returns the
        rejection, or ``None`` when the write may proceed.
        """
        if not requires_conflict_check(booking.status, self.check_reserved):
            return None
        result = self.evaluate_conflict(booking.interval, exclude_id=booking.id)
        if result.ok:
            return None

        logger.debug("Booking %s on %s collides with %s", booking.id, booking.date, result.conflict.id)
        self.bus.publish(
            ConflictRejected(
                booking_id=booking.id,
                conflicting_booking_id=result.conflict.id,
                attempted_status=booking.status,
            )
        )
        return BookingWriteResult(conflict=result)
