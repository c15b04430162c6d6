"""Pydantic schemas for booking API requests and responses."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from src.marketplace_booking.application.services.booking_engine import (
    BookingListing,
    TransitionOutcome,
)
from src.marketplace_booking.domain.entities.booking import (
    Booking,
    BookingStatus,
    PaymentMethod,
)
from src.marketplace_booking.domain.value_objects.time_slot import TimeSlot


class ServiceRequestItem(BaseModel):
    """One requested vendor service."""
    service_id: str = Field(..., min_length=1, description="Vendor service ID")
    quantity: int = Field(default=1, ge=1, description="Number of units")


class BookingCreateRequest(BaseModel):
    """Request model for creating a booking."""
    vendor_id: str = Field(..., min_length=1)
    services: List[ServiceRequestItem] = Field(..., min_length=1)
    service_date: date = Field(..., description="Calendar date of the service")
    start_time: time = Field(..., description="Slot start, HH:MM")
    end_time: time = Field(..., description="Slot end, HH:MM")
    payment_method: PaymentMethod
    special_requests: str = Field(default="", max_length=500)

    @model_validator(mode="after")
    def validate_slot(self):
        """Validate the slot is a forward same-day interval."""
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class StatusChangeRequest(BaseModel):
    """Request model for a lifecycle transition."""
    status: BookingStatus
    notes: str = Field(default="", max_length=500)


class CancelRequest(BaseModel):
    """Request model for cancelling a booking."""
    reason: str = Field(default="", max_length=500)


class LineItemResponse(BaseModel):
    service_id: str
    name: str
    unit_price: Decimal
    quantity: int
    duration_minutes: int


class PricingResponse(BaseModel):
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    service_fee: Decimal
    total: Decimal
    currency: str


class PaymentResponse(BaseModel):
    method: str
    status: str
    reference: Optional[str] = None
    paid_amount: Decimal
    refunded_amount: Decimal


class CancellationResponse(BaseModel):
    cancelled_by: str
    cancelled_at: datetime
    reason: str
    fee_charged: Decimal
    refund_amount: Decimal


class StatusHistoryResponse(BaseModel):
    status: str
    changed_by: str
    changed_at: datetime
    notes: str


class BookingResponse(BaseModel):
    """Response model for booking operations."""
    id: UUID
    customer_id: str
    vendor_id: str
    service_date: date
    start_time: str
    end_time: str
    status: str
    line_items: List[LineItemResponse]
    pricing: PricingResponse
    payment: PaymentResponse
    cancellation: Optional[CancellationResponse] = None
    status_history: List[StatusHistoryResponse]
    special_requests: str
    verification_code: str
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingResponse":
        cancellation = None
        if booking.cancellation is not None:
            cancellation = CancellationResponse(
                cancelled_by=booking.cancellation.cancelled_by.value,
                cancelled_at=booking.cancellation.cancelled_at,
                reason=booking.cancellation.reason,
                fee_charged=booking.cancellation.fee_charged,
                refund_amount=booking.cancellation.refund_amount,
            )
        return cls(
            id=booking.id,
            customer_id=booking.customer_id,
            vendor_id=booking.vendor_id,
            service_date=booking.service_date,
            start_time=booking.time_slot.start_time.strftime("%H:%M"),
            end_time=booking.time_slot.end_time.strftime("%H:%M"),
            status=booking.status.value,
            line_items=[
                LineItemResponse(
                    service_id=item.service_id,
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    duration_minutes=item.duration_minutes,
                )
                for item in booking.line_items
            ],
            pricing=PricingResponse(
                subtotal=booking.pricing.subtotal,
                discount=booking.pricing.discount,
                tax=booking.pricing.tax,
                service_fee=booking.pricing.service_fee,
                total=booking.pricing.total,
                currency=booking.pricing.currency,
            ),
            payment=PaymentResponse(
                method=booking.payment.method.value,
                status=booking.payment.status.value,
                reference=booking.payment.reference,
                paid_amount=booking.payment.paid_amount,
                refunded_amount=booking.payment.refunded_amount,
            ),
            cancellation=cancellation,
            status_history=[
                StatusHistoryResponse(
                    status=entry.status.value,
                    changed_by=entry.changed_by,
                    changed_at=entry.changed_at,
                    notes=entry.notes,
                )
                for entry in booking.status_history
            ],
            special_requests=booking.special_requests,
            verification_code=booking.verification_code,
            version=booking.version,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class TransitionResponse(BaseModel):
    """Response model for status changes and cancellations."""
    booking: BookingResponse
    previous_status: str
    warnings: List[str] = []

    @classmethod
    def from_outcome(cls, outcome: TransitionOutcome) -> "TransitionResponse":
        return cls(
            booking=BookingResponse.from_entity(outcome.booking),
            previous_status=outcome.previous_status.value,
            warnings=list(outcome.warnings),
        )


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class BookingListResponse(BaseModel):
    """Response model for listing bookings."""
    bookings: List[BookingResponse]
    pagination: PaginationResponse

    @classmethod
    def from_listing(cls, listing: BookingListing) -> "BookingListResponse":
        return cls(
            bookings=[BookingResponse.from_entity(booking) for booking in listing.items],
            pagination=PaginationResponse(
                current_page=listing.page,
                total_pages=listing.total_pages,
                total_items=listing.total,
                items_per_page=listing.limit,
            ),
        )


class TimeSlotResponse(BaseModel):
    """Response model for time slot information."""
    start_time: str = Field(..., description="Start time in HH:MM format")
    end_time: str = Field(..., description="End time in HH:MM format")
    time_range: str

    @classmethod
    def from_slot(cls, slot: TimeSlot) -> "TimeSlotResponse":
        return cls(
            start_time=slot.start_time.strftime("%H:%M"),
            end_time=slot.end_time.strftime("%H:%M"),
            time_range=slot.format_time_range(),
        )


class AvailableSlotsResponse(BaseModel):
    """Response model for available slots."""
    vendor_id: str
    service_date: date
    duration_minutes: int
    available_slots: List[TimeSlotResponse]
    available_count: int


class ErrorResponse(BaseModel):
    """Response model for errors."""
    type: str
    detail: str
    details: Dict[str, Any] = {}
