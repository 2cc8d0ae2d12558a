"""Domain event handlers: wired up at application startup."""

from __future__ import annotations

import logging

from slotbook.domain.bus import EventBus
from slotbook.domain.events import (
    BookingCreated,
    BookingDeleted,
    BookingStatusChanged,
    BookingUpdated,
    ConflictRejected,
)
from slotbook.domain.models import TimelineEntry, TimelineEntryType
from slotbook.repos.memory import TimelineRepository

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus; every handler appends to the timeline."""

    def __init__(self, bus: EventBus, timeline_repo: TimelineRepository) -> None:
        self.bus = bus
        self.timeline_repo = timeline_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(BookingCreated, self.on_booking_created)
        self.bus.subscribe(BookingUpdated, self.on_booking_updated)
        self.bus.subscribe(BookingStatusChanged, self.on_status_changed)
        self.bus.subscribe(ConflictRejected, self.on_conflict_rejected)
        self.bus.subscribe(BookingDeleted, self.on_booking_deleted)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_booking_created(self, event: BookingCreated) -> None:
        logger.info("Booking %s created as %s", event.booking_id, event.status)
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.CREATED,
                payload={"status": event.status},
            )
        )

    def on_booking_updated(self, event: BookingUpdated) -> None:
        if not event.changed_fields:
            return
        logger.info("Booking %s updated: %s", event.booking_id, ", ".join(event.changed_fields))
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.UPDATED,
                payload={"fields": event.changed_fields},
            )
        )

    def on_status_changed(self, event: BookingStatusChanged) -> None:
        logger.info(
            "Booking %s moved %s -> %s", event.booking_id, event.previous, event.current
        )
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.STATUS_CHANGED,
                payload={"from": event.previous, "to": event.current},
            )
        )

    def on_conflict_rejected(self, event: ConflictRejected) -> None:
        logger.warning(
            "Booking %s refused %s: overlaps %s",
            event.booking_id,
            event.attempted_status,
            event.conflicting_booking_id,
        )
        self.timeline_repo.add(
            TimelineEntry(
                booking_id=event.booking_id,
                type=TimelineEntryType.CONFLICT_REJECTED,
                payload={
                    "conflicting_booking_id": event.conflicting_booking_id,
                    "attempted_status": event.attempted_status,
                },
            )
        )

    def on_booking_deleted(self, event: BookingDeleted) -> None:
        logger.info("Booking %s deleted", event.booking_id)
        self.timeline_repo.add(
            TimelineEntry(booking_id=event.booking_id, type=TimelineEntryType.DELETED)
        )
