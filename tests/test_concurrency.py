"""Concurrent confirmations must never leave two committed bookings overlapping."""

from __future__ import annotations

import datetime as dt
import itertools
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from slotbook.domain.bus import EventBus
from slotbook.domain.errors import BookingNotFound, InvalidTransition
from slotbook.domain.models import BookingRequest, BookingStatus
from slotbook.repos.memory import BookingRepository
from slotbook.services.conflicts import slots_collide
from slotbook.services.lifecycle import BookingService, DateLockRegistry

DATES = [dt.date(2024, 3, 1), dt.date(2024, 3, 2)]


class SlowBookingRepository(BookingRepository):
    """Widens the gap between the committed-set read and the write."""

    def find_committed(self, date):
        rows = super().find_committed(date)
        time.sleep(0.001)
        return rows


def _random_request(rng: random.Random, booking_id: str) -> BookingRequest:
    start_hour = rng.randrange(24)
    length = rng.choice([30, 60, 90, 120, 180])
    start = start_hour * 60 + rng.choice([0, 30])
    end = (start + length) % 1440
    return BookingRequest(
        id=booking_id,
        customer_name=f"Guest {booking_id}",
        phone="0770000000",
        date=rng.choice(DATES),
        start_time=f"{start // 60:02d}:{start % 60:02d}",
        end_time=f"{end // 60:02d}:{end % 60:02d}",
        status=rng.choice([BookingStatus.CONFIRMED, BookingStatus.PENDING]),
    )


def _assert_no_overlap(repo: BookingRepository) -> None:
    for date in DATES:
        confirmed = [
            b for b in repo.find_committed(date) if b.status == BookingStatus.CONFIRMED
        ]
        for a, b in itertools.combinations(confirmed, 2):
            assert not slots_collide(a.interval.minutes(), b.interval.minutes()), (a, b)


@pytest.mark.parametrize("seed", range(5))
def test_interleaved_confirmations_never_double_book(seed):
    rng = random.Random(seed)
    repo = SlowBookingRepository()
    service = BookingService(repo=repo, bus=EventBus())

    requests = [_random_request(rng, f"S{seed}-{i}") for i in range(120)]
    status_flips = [rng.randrange(len(requests)) for _ in range(60)]

    def create(request: BookingRequest):
        return service.create_or_update(request)

    def confirm(index: int):
        booking_id = requests[index].id
        if repo.get(booking_id) is None:
            return None
        try:
            return service.change_status(booking_id, BookingStatus.CONFIRMED)
        except InvalidTransition:
            return None

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(create, requests))
        list(pool.map(confirm, status_flips))

    assert any(not r.accepted for r in results)
    _assert_no_overlap(repo)


def test_racing_identical_confirmations_admit_exactly_one():
    repo = SlowBookingRepository()
    service = BookingService(repo=repo, bus=EventBus())

    def attempt(i: int):
        return service.create_or_update(
            BookingRequest(
                id=f"R{i}",
                customer_name="Racer",
                phone="0771234567",
                date=DATES[0],
                start_time="18:00",
                end_time="20:00",
                status=BookingStatus.CONFIRMED,
            )
        )

    with ThreadPoolExecutor(max_workers=20) as pool:
        results = list(pool.map(attempt, range(40)))

    assert sum(r.accepted for r in results) == 1
    assert len(repo.find_committed(DATES[0])) == 1


# ---------------------------------------------------------------------------
# Deletion against in-flight writes
# ---------------------------------------------------------------------------


class HookedBookingRepository(BookingRepository):
    """Runs ``on_committed_read`` once, the first time the committed set is read."""

    on_committed_read = None

    def find_committed_between(self, from_date, to_date):
        hook, self.on_committed_read = self.on_committed_read, None
        if hook is not None:
            hook()
        return super().find_committed_between(from_date, to_date)


def _pending(booking_id: str, status: BookingStatus = BookingStatus.PENDING) -> BookingRequest:
    return BookingRequest(
        id=booking_id,
        status=status,
        customer_name="Guest",
        phone="0771234567",
        date=DATES[0],
        start_time="18:00",
        end_time="20:00",
    )


def test_delete_waits_for_in_flight_confirmation():
    repo = HookedBookingRepository()
    service = BookingService(repo=repo, bus=EventBus())
    service.create_or_update(_pending("B1"))
    deleter = threading.Thread(target=service.delete_booking, args=("B1",))

    def start_delete():
        deleter.start()
        deleter.join(timeout=0.2)
        # Still waiting for the date lock held by the confirmation.
        assert deleter.is_alive()

    repo.on_committed_read = start_delete
    result = service.change_status("B1", BookingStatus.CONFIRMED)
    deleter.join(timeout=5)

    assert result.accepted
    assert not deleter.is_alive()
    assert repo.get("B1") is None
    assert repo.find_committed(DATES[0]) == []


def test_booking_deleted_mid_write_is_not_restored():
    repo = HookedBookingRepository()
    service = BookingService(repo=repo, bus=EventBus())
    service.create_or_update(_pending("B1"))
    repo.on_committed_read = lambda: service.delete_booking("B1")

    with pytest.raises(BookingNotFound):
        service.change_status("B1", BookingStatus.CONFIRMED)

    assert repo.get("B1") is None


def test_update_of_booking_deleted_mid_write_is_not_restored():
    repo = HookedBookingRepository()
    service = BookingService(repo=repo, bus=EventBus())
    service.create_or_update(_pending("B1"))
    repo.on_committed_read = lambda: service.delete_booking("B1")

    with pytest.raises(BookingNotFound):
        service.create_or_update(_pending("B1", BookingStatus.CONFIRMED))

    assert repo.get("B1") is None


# ---------------------------------------------------------------------------
# Lock registry
# ---------------------------------------------------------------------------


def test_lock_registry_forgets_idle_dates():
    locks = DateLockRegistry()
    with locks.hold(*DATES):
        assert len(locks) == 2
        with locks.hold(DATES[0]):
            assert len(locks) == 2
        assert len(locks) == 2
    assert len(locks) == 0


def test_lock_registry_serializes_same_date():
    locks = DateLockRegistry()
    entered = threading.Event()

    def contender():
        with locks.hold(DATES[0]):
            entered.set()

    with locks.hold(DATES[0]):
        worker = threading.Thread(target=contender)
        worker.start()
        assert not entered.wait(timeout=0.1)
    worker.join(timeout=5)

    assert entered.is_set()
    assert len(locks) == 0


def test_lock_registry_churn_leaves_nothing_behind():
    locks = DateLockRegistry()
    days = [DATES[0] + dt.timedelta(days=i) for i in range(30)]

    def hold(i: int):
        with locks.hold(days[i % 30], days[(i * 7) % 30]):
            time.sleep(0.0005)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(hold, range(200)))

    assert len(locks) == 0
