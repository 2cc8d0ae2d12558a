"""FastAPI application: entry point for the venue booking service."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from slotbook.config import AppConfig, load_config
from slotbook.domain.bus import EventBus
from slotbook.domain.errors import (
    BookingNotFound,
    InvalidTransition,
    SlotbookError,
)
from slotbook.domain.handlers import HandlerRegistry
from slotbook.domain.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    BookingWriteResult,
    ConflictCheckRequest,
    ConflictResult,
    DayAvailability,
    StatusChangeRequest,
    TimelineEntry,
)
from slotbook.logging_setup import configure_logging, get_request_id, set_request_id
from slotbook.repos.memory import (
    BookingRepository,
    TimelineRepository,
    create_booking_repository,
)
from slotbook.services.lifecycle import BookingService

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Time conflict: slot already booked"


@dataclass
class Services:
    """Everything the routes need, built once at startup."""

    config: AppConfig
    bus: EventBus
    booking_repo: BookingRepository
    timeline_repo: TimelineRepository
    handlers: HandlerRegistry
    bookings: BookingService


def build_services(config: AppConfig) -> Services:
    bus = EventBus()
    booking_repo = create_booking_repository(seed=config.seed_demo)
    timeline_repo = TimelineRepository()
    handlers = HandlerRegistry(bus=bus, timeline_repo=timeline_repo)
    bookings = BookingService(
        repo=booking_repo,
        bus=bus,
        check_reserved=config.check_reserved,
        max_range_days=config.max_range_days,
    )
    return Services(
        config=config,
        bus=bus,
        booking_repo=booking_repo,
        timeline_repo=timeline_repo,
        handlers=handlers,
        bookings=bookings,
    )


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application; services are initialized by the lifespan hook."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or load_config()
        configure_logging(cfg.log_level)
        app.state.services = build_services(cfg)
        app.state.ready = True
        logger.info("Booking service ready (window %s-%s)", cfg.day_start, cfg.day_end)
        yield
        app.state.ready = False

    app = FastAPI(title="Venue Booking Service", lifespan=lifespan)
    app.state.ready = False

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        set_request_id(request.headers.get("x-request-id") or uuid.uuid4().hex[:8])
        response = await call_next(request)
        response.headers["X-Request-ID"] = get_request_id()
        return response

    _register_routes(app)
    return app


def get_services(request: Request) -> Services:
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="Service is starting up")
    return request.app.state.services


def _http_error(exc: SlotbookError) -> HTTPException:
    if isinstance(exc, BookingNotFound):
        return HTTPException(status_code=404, detail="Booking not found")
    if isinstance(exc, InvalidTransition):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _accepted(result: BookingWriteResult) -> Booking:
    if result.booking is None:
        conflict = result.conflict.conflict if result.conflict else None
        raise HTTPException(
            status_code=409,
            detail={
                "error": CONFLICT_MESSAGE,
                "conflict": conflict.model_dump(mode="json", by_alias=True) if conflict else None,
            },
        )
    return result.booking


# ── Routes ────────────────────────────────────────────────────────────


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health(request: Request) -> dict:
        """Readiness signal: true once startup initialization has finished."""
        return {"ready": bool(getattr(request.app.state, "ready", False))}

    @app.get("/bookings", response_model=list[Booking])
    def list_bookings(
        from_date: dt.date | None = Query(None, alias="from"),
        to_date: dt.date | None = Query(None, alias="to"),
        status: str | None = None,
        phone: str | None = None,
        services: Services = Depends(get_services),
    ) -> list[Booking]:
        """Return bookings sorted by date and start time. ``status=All`` disables that filter."""
        status_filter = None
        if status and status != "All":
            try:
                status_filter = BookingStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown status {status!r}") from None
        return services.bookings.list_bookings(from_date, to_date, status_filter, phone)

    @app.post("/bookings", response_model=Booking)
    def save_booking(
        payload: BookingRequest, services: Services = Depends(get_services)
    ) -> Booking:
        """Create a booking, or update the one whose id matches."""
        try:
            result = services.bookings.create_or_update(payload)
        except SlotbookError as exc:
            raise _http_error(exc) from exc
        return _accepted(result)

    @app.get("/bookings/free", response_model=list[DayAvailability])
    def free_slots(
        from_date: dt.date = Query(alias="from"),
        to_date: dt.date = Query(alias="to"),
        start: str | None = None,
        end: str | None = None,
        services: Services = Depends(get_services),
    ) -> list[DayAvailability]:
        """Free minute ranges per date inside the daily window (defaults to configured hours)."""
        try:
            by_date = services.bookings.compute_availability(
                from_date,
                to_date,
                start or services.config.day_start,
                end or services.config.day_end,
            )
        except SlotbookError as exc:
            raise _http_error(exc) from exc
        return [DayAvailability(date=day, free=free) for day, free in by_date.items()]

    @app.post("/bookings/conflicts", response_model=ConflictResult)
    def evaluate_conflict(
        payload: ConflictCheckRequest, services: Services = Depends(get_services)
    ) -> ConflictResult:
        """Report whether the interval collides with a committed booking."""
        return services.bookings.evaluate_conflict(payload, exclude_id=payload.exclude_id)

    @app.get("/bookings/{booking_id}", response_model=Booking)
    def get_booking(booking_id: str, services: Services = Depends(get_services)) -> Booking:
        try:
            return services.bookings.get_booking(booking_id)
        except BookingNotFound as exc:
            raise _http_error(exc) from exc

    @app.patch("/bookings/{booking_id}/status", response_model=Booking)
    def change_status(
        booking_id: str,
        body: StatusChangeRequest,
        services: Services = Depends(get_services),
    ) -> Booking:
        try:
            result = services.bookings.change_status(booking_id, body.status)
        except SlotbookError as exc:
            raise _http_error(exc) from exc
        return _accepted(result)

    @app.delete("/bookings/{booking_id}")
    def delete_booking(booking_id: str, services: Services = Depends(get_services)) -> dict:
        try:
            services.bookings.delete_booking(booking_id)
        except BookingNotFound as exc:
            raise _http_error(exc) from exc
        return {"message": "Booking deleted successfully"}

    @app.get("/bookings/{booking_id}/timeline", response_model=list[TimelineEntry])
    def booking_timeline(
        booking_id: str, services: Services = Depends(get_services)
    ) -> list[TimelineEntry]:
        """Audit trail of a booking, oldest first. Kept after deletion."""
        return services.timeline_repo.list_for_booking(booking_id)


app = create_app()
