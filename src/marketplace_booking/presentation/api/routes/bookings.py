"""Booking endpoints."""

from datetime import date
from typing import NamedTuple, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query

from src.marketplace_booking.application.services.booking_engine import BookingEngine, BookingRequest
from src.marketplace_booking.domain.entities.booking import ActorRole, BookingStatus
from src.marketplace_booking.domain.services.pricing import RequestedService
from src.marketplace_booking.domain.value_objects.time_slot import TimeSlot
from src.marketplace_booking.infrastructure.services import get_booking_engine
from src.marketplace_booking.presentation.api.schemas.booking_schemas import (
    AvailableSlotsResponse,
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    CancelRequest,
    StatusChangeRequest,
    TimeSlotResponse,
    TransitionResponse,
)

router = APIRouter()


class Actor(NamedTuple):
    """Caller identity as asserted by the upstream auth layer."""
    role: ActorRole
    actor_id: Optional[str]


def get_actor(
    x_actor_role: str = Header(..., description="customer, vendor or admin"),
    x_actor_id: Optional[str] = Header(default=None, description="Customer or vendor ID"),
) -> Actor:
    """Resolve the acting party from request headers."""
    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown actor role: {x_actor_role}")

    if role != ActorRole.ADMIN and not x_actor_id:
        raise HTTPException(status_code=401, detail="X-Actor-Id is required for customers and vendors")
    return Actor(role=role, actor_id=x_actor_id)


@router.post("/", status_code=201)
async def create_booking(
    request: BookingCreateRequest,
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_booking_engine),
) -> BookingResponse:
    """Reserve a vendor slot for the calling customer."""
    if actor.role != ActorRole.CUSTOMER:
        raise HTTPException(status_code=403, detail="Only customers can create bookings")

    booking = await engine.create_booking(
        BookingRequest(
            customer_id=actor.actor_id,
            vendor_id=request.vendor_id,
            services=[RequestedService(item.service_id, item.quantity) for item in request.services],
            service_date=request.service_date,
            time_slot=TimeSlot(start_time=request.start_time, end_time=request.end_time),
            payment_method=request.payment_method,
            special_requests=request.special_requests,
        )
    )
    return BookingResponse.from_entity(booking)


@router.get("/")
async def list_bookings(
    status: Optional[BookingStatus] = Query(default=None),
    vendor_id: Optional[str] = Query(default=None),
    customer_id: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_booking_engine),
) -> BookingListResponse:
    """List bookings visible to the caller."""
    listing = await engine.list_bookings(
        actor.role,
        actor.actor_id,
        status=status,
        vendor_id=vendor_id,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return BookingListResponse.from_listing(listing)


@router.get("/vendors/{vendor_id}/available-slots")
async def get_available_slots(
    vendor_id: str = Path(..., description="Vendor ID"),
    service_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    duration_minutes: int = Query(default=60, ge=5, le=24 * 60),
    step_minutes: Optional[int] = Query(default=None, ge=5),
    engine: BookingEngine = Depends(get_booking_engine),
) -> AvailableSlotsResponse:
    """Get free slots of a given length for a vendor on a date."""
    slots = await engine.find_available_slots(vendor_id, service_date, duration_minutes, step_minutes)
    return AvailableSlotsResponse(
        vendor_id=vendor_id,
        service_date=service_date,
        duration_minutes=duration_minutes,
        available_slots=[TimeSlotResponse.from_slot(slot) for slot in slots],
        available_count=len(slots),
    )


@router.get("/{booking_id}")
async def get_booking(
    booking_id: UUID = Path(..., description="Booking ID"),
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_booking_engine),
) -> BookingResponse:
    """Get booking by ID."""
    booking = await engine.get_booking(booking_id, actor.role, actor.actor_id)
    return BookingResponse.from_entity(booking)


@router.post("/{booking_id}/status")
async def change_status(
    request: StatusChangeRequest,
    booking_id: UUID = Path(..., description="Booking ID"),
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_booking_engine),
) -> TransitionResponse:
    """Move a booking through its lifecycle."""
    outcome = await engine.transition_status(
        booking_id, request.status, actor.role, notes=request.notes, actor_id=actor.actor_id
    )
    return TransitionResponse.from_outcome(outcome)


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    request: CancelRequest,
    booking_id: UUID = Path(..., description="Booking ID"),
    actor: Actor = Depends(get_actor),
    engine: BookingEngine = Depends(get_booking_engine),
) -> TransitionResponse:
    """Cancel a booking."""
    outcome = await engine.cancel_booking(
        booking_id, actor.role, reason=request.reason, actor_id=actor.actor_id
    )
    return TransitionResponse.from_outcome(outcome)
