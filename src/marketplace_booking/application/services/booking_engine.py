"""Booking engine implementing the reservation and lifecycle use cases."""

import asyncio
import math
import secrets
import string
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from ..ports.clock import Clock
from ..ports.gateways import NotificationPort, PaymentPort
from ..ports.repositories import BookingQuery, BookingRepository, VendorCatalog
from ...domain.entities.booking import (
    ActorRole,
    Booking,
    BookingStatus,
    PaymentInfo,
    PaymentMethod,
    PaymentStatus,
    StatusHistoryEntry,
)
from ...domain.entities.vendor import VendorAvailability
from ...domain.exceptions import (
    BookingAccessDenied,
    BookingError,
    BookingNotFound,
    ExternalServiceError,
    SlotConflict,
    SlotUnavailable,
    StaleBooking,
    ValidationError,
)
from ...domain.services.availability import AvailabilityChecker, AvailableSlotFinder
from ...domain.services.pricing import PricingEngine, RequestedService
from ...domain.services.state_machine import BookingStateMachine
from ...domain.value_objects.money import ZERO, round_money
from ...domain.value_objects.time_slot import TimeSlot
from ...infrastructure.logging import (
    get_logger,
    log_booking_event,
    log_business_rule_violation,
)

T = TypeVar("T")

VERIFICATION_CODE_ALPHABET = string.ascii_uppercase + string.digits
VERIFICATION_CODE_LENGTH = 6


def generate_verification_code() -> str:
    """Random check-in code shown to the customer."""
    return "".join(secrets.choice(VERIFICATION_CODE_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH))


@dataclass(frozen=True)
class BookingRequest:
    """Everything a customer submits to reserve a vendor slot."""

    customer_id: str
    vendor_id: str
    services: Sequence[RequestedService]
    service_date: date
    time_slot: TimeSlot
    payment_method: PaymentMethod
    special_requests: str = ""


@dataclass(frozen=True)
class TransitionOutcome:
    """A committed status change plus any side effects that failed."""

    booking: Booking
    previous_status: BookingStatus
    warnings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BookingListing:
    """Page of bookings visible to an actor."""

    items: List[Booking] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class BookingEngine:
    """Application service for booking management.

    Creation flows availability pre-check, pricing, atomic reservation, then a
    best-effort notification. Transitions flow through the state machine, a
    versioned repository update, then side effects (refund, payment
    finalization, notifications) whose failures become warnings and never
    roll back the committed status.
    """

    def __init__(
        self,
        booking_repository: BookingRepository,
        vendor_catalog: VendorCatalog,
        payment_port: PaymentPort,
        notification_port: NotificationPort,
        clock: Clock,
        pricing_engine: Optional[PricingEngine] = None,
        availability_checker: Optional[AvailabilityChecker] = None,
        state_machine: Optional[BookingStateMachine] = None,
        call_timeout: Optional[float] = 5.0,
        code_generator: Callable[[], str] = generate_verification_code,
    ):
        self._booking_repository = booking_repository
        self._vendor_catalog = vendor_catalog
        self._payment_port = payment_port
        self._notification_port = notification_port
        self._clock = clock
        self._pricing_engine = pricing_engine or PricingEngine()
        self._availability_checker = availability_checker or AvailabilityChecker()
        self._slot_finder = AvailableSlotFinder(self._availability_checker)
        self._state_machine = state_machine or BookingStateMachine()
        self._call_timeout = call_timeout
        self._code_generator = code_generator
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Use cases
    # ------------------------------------------------------------------

    async def create_booking(self, request: BookingRequest) -> Booking:
        """Reserve a slot for a customer and price it.

        Raises:
            ValidationError: malformed request or unknown vendor.
            SlotUnavailable: vendor closed, outside hours, or slot taken.
            InvalidLineItem: a service is unknown or inactive.
            SlotConflict: another request won the reservation race.
            ExternalServiceError: repository or catalog call failed.
        """
        now = self._clock.now()
        self._validate_schedule(request.service_date, request.time_slot, now)

        availability = await self._load_vendor(request.vendor_id)
        existing = await self._call(
            "list active bookings",
            self._booking_repository.list_active_by_vendor_and_date(request.vendor_id, request.service_date),
        )

        reason = self._availability_checker.rejection_reason(
            availability, request.service_date, request.time_slot, existing
        )
        if reason:
            log_business_rule_violation(
                self._logger, "slot_unavailable", reason,
                vendor_id=request.vendor_id,
                service_date=str(request.service_date),
                time_slot=str(request.time_slot),
            )
            raise SlotUnavailable(
                f"Selected time slot is not available: {reason}",
                {"vendor_id": request.vendor_id, "reason": reason}
            )

        has_history = await self._call(
            "check customer history",
            self._booking_repository.has_customer_booked_vendor(request.customer_id, request.vendor_id),
        )
        quote = self._pricing_engine.price(
            availability, request.services, request.service_date, not has_history, now
        )

        required_minutes = sum(item.total_duration_minutes for item in quote.line_items)
        if required_minutes > request.time_slot.duration_minutes:
            raise ValidationError(
                f"Time slot of {request.time_slot.duration_minutes} minutes cannot fit "
                f"{required_minutes} minutes of services",
                {"time_slot": f"must be at least {required_minutes} minutes long"}
            )

        status = BookingStatus.CONFIRMED if availability.auto_confirm_bookings else BookingStatus.PENDING_APPROVAL
        booking = Booking(
            customer_id=request.customer_id,
            vendor_id=request.vendor_id,
            line_items=quote.line_items,
            service_date=request.service_date,
            time_slot=request.time_slot,
            pricing=quote.pricing,
            payment=PaymentInfo(method=request.payment_method),
            status=status,
            status_history=(
                StatusHistoryEntry(status=status, changed_by=request.customer_id, changed_at=now, notes="Booking created"),
            ),
            special_requests=request.special_requests,
            verification_code=self._code_generator(),
            created_at=now,
            updated_at=now,
        )

        result = await self._call("reserve slot", self._booking_repository.reserve_slot(booking))
        if result.conflict or result.booking is None:
            log_business_rule_violation(
                self._logger, "slot_conflict", "reservation lost to a concurrent booking",
                vendor_id=request.vendor_id,
                service_date=str(request.service_date),
                time_slot=str(request.time_slot),
            )
            raise SlotConflict(
                "Selected time slot was just booked by someone else",
                {"vendor_id": request.vendor_id, "time_slot": str(request.time_slot)}
            )

        created = result.booking
        log_booking_event(
            self._logger, "created", str(created.id),
            customer_id=created.customer_id,
            vendor_id=created.vendor_id,
            status=created.status.value,
            total=str(created.pricing.total),
        )
        await self._best_effort("booking created notification", self._notification_port.booking_created(created))
        return created

    async def get_booking(self, booking_id: UUID, actor_role: ActorRole, actor_id: Optional[str]) -> Booking:
        """Fetch a booking visible to the customer, the owning vendor, or an admin."""
        booking = await self._load_booking(booking_id)
        self._ensure_visible(booking, actor_role, actor_id)
        return booking

    async def transition_status(
        self,
        booking_id: UUID,
        target: BookingStatus,
        actor_role: ActorRole,
        notes: str = "",
        actor_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """Move a booking to ``target`` and run the resulting side effects.

        When ``actor_id`` is given, customers and vendors may only act on their
        own bookings.
        """
        booking = await self._load_booking(booking_id)
        if actor_id is not None:
            self._ensure_visible(booking, actor_role, actor_id)

        now = self._clock.now()
        updated = self._state_machine.transition(
            booking, target, actor_role, changed_by=actor_id or actor_role.value, now=now, notes=notes
        )
        result = await self._call(
            "update status",
            self._booking_repository.update_status(
                booking.id, booking.version, target, updated.status_history[-1], updated.cancellation
            ),
        )
        if result.stale:
            raise StaleBooking(
                f"Booking {booking.id} was modified concurrently; reload and retry",
                {"booking_id": str(booking.id), "expected_version": booking.version}
            )
        if result.conflict:
            raise SlotConflict(
                f"Slot for booking {booking.id} is now held by another booking",
                {"booking_id": str(booking.id)}
            )
        if result.booking is None:
            raise BookingNotFound(f"Booking not found: {booking_id}", {"booking_id": str(booking_id)})

        committed = result.booking
        log_booking_event(
            self._logger, "status_changed", str(committed.id),
            previous_status=booking.status.value,
            new_status=committed.status.value,
            actor_role=actor_role.value,
        )

        warnings: List[str] = []
        if target == BookingStatus.CANCELLED:
            committed = await self._settle_cancellation(committed, warnings)
        elif target == BookingStatus.COMPLETED:
            committed = await self._finalize_payment(committed, warnings)

        warning = await self._best_effort(
            "status change notification", self._notification_port.status_changed(committed, booking.status)
        )
        if warning:
            warnings.append(warning)
        if target == BookingStatus.COMPLETED:
            warning = await self._best_effort(
                "review request notification", self._notification_port.review_requested(committed)
            )
            if warning:
                warnings.append(warning)

        return TransitionOutcome(booking=committed, previous_status=booking.status, warnings=tuple(warnings))

    async def cancel_booking(
        self,
        booking_id: UUID,
        actor_role: ActorRole,
        reason: str = "",
        actor_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """Cancel a booking, charging the time-based fee and refunding the rest."""
        return await self.transition_status(
            booking_id, BookingStatus.CANCELLED, actor_role, notes=reason, actor_id=actor_id
        )

    async def list_bookings(
        self,
        actor_role: ActorRole,
        actor_id: Optional[str],
        status: Optional[BookingStatus] = None,
        vendor_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> BookingListing:
        """List bookings scoped to what the actor may see."""
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive", {"page": "must be >= 1", "limit": "must be >= 1"})

        if actor_role == ActorRole.CUSTOMER:
            customer_id = actor_id
        elif actor_role == ActorRole.VENDOR:
            vendor_id = actor_id

        query = BookingQuery(
            customer_id=customer_id,
            vendor_id=vendor_id,
            status=status,
            date_from=date_from,
            date_to=date_to,
            offset=(page - 1) * limit,
            limit=limit,
        )
        result = await self._call("search bookings", self._booking_repository.search(query))
        return BookingListing(items=result.items, total=result.total, page=page, limit=limit)

    async def find_available_slots(
        self,
        vendor_id: str,
        service_date: date,
        duration_minutes: int,
        step_minutes: Optional[int] = None,
    ) -> List[TimeSlot]:
        """Free slots of ``duration_minutes`` for a vendor on a date."""
        now = self._clock.now()
        if service_date < now.date():
            raise ValidationError("Cannot search availability in the past", {"service_date": "must not be in the past"})
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive", {"duration_minutes": "must be > 0"})

        availability = await self._load_vendor(vendor_id)
        existing = await self._call(
            "list active bookings",
            self._booking_repository.list_active_by_vendor_and_date(vendor_id, service_date),
        )
        slots = self._slot_finder.find(availability, service_date, duration_minutes, existing, step_minutes)
        if service_date == now.date():
            slots = [slot for slot in slots if slot.start_time > now.time()]
        return slots

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    async def _settle_cancellation(self, booking: Booking, warnings: List[str]) -> Booking:
        """Refund ``total - fee`` to a customer who already paid."""
        cancellation = booking.cancellation
        if cancellation is None or cancellation.refund_amount <= ZERO:
            return booking

        amount = cancellation.refund_amount
        try:
            refund = await self._with_timeout(self._payment_port.issue_refund(booking.id, amount))
        except Exception as exc:
            self._logger.error(
                "Refund failed",
                extra={"booking_id": str(booking.id), "amount": str(amount), "error": str(exc)},
                exc_info=True
            )
            warnings.append(f"refund of {amount} {booking.pricing.currency} failed: {exc}")
            return booking

        if not refund.succeeded:
            self._logger.error(
                "Refund declined",
                extra={"booking_id": str(booking.id), "amount": str(amount), "reason": refund.message}
            )
            warnings.append(f"refund of {amount} {booking.pricing.currency} declined: {refund.message}")
            return booking

        refunded_total = round_money(booking.payment.refunded_amount + refund.amount)
        payment = replace(
            booking.payment,
            refunded_amount=refunded_total,
            status=(
                PaymentStatus.REFUNDED
                if refunded_total >= booking.payment.paid_amount
                else PaymentStatus.PARTIALLY_REFUNDED
            ),
        )
        log_booking_event(self._logger, "refunded", str(booking.id), amount=str(refund.amount))
        return await self._store_payment(booking, payment, warnings)

    async def _finalize_payment(self, booking: Booking, warnings: List[str]) -> Booking:
        """Charge the booking total unless the customer already paid."""
        if booking.payment.is_paid:
            return booking

        try:
            handle = await self._with_timeout(
                self._payment_port.create_charge(
                    booking.id, booking.pricing.total, booking.pricing.currency, booking.payment.method
                )
            )
        except Exception as exc:
            self._logger.error(
                "Payment finalization failed",
                extra={"booking_id": str(booking.id), "error": str(exc)},
                exc_info=True
            )
            warnings.append(f"payment finalization failed: {exc}")
            return booking

        paid = handle.status == PaymentStatus.PAID
        payment = replace(
            booking.payment,
            status=handle.status,
            reference=handle.reference,
            paid_amount=booking.pricing.total if paid else booking.payment.paid_amount,
        )
        if not paid:
            warnings.append(f"payment {handle.reference} is {handle.status.value}")
        return await self._store_payment(booking, payment, warnings)

    async def _store_payment(self, booking: Booking, payment: PaymentInfo, warnings: List[str]) -> Booking:
        try:
            stored = await self._with_timeout(self._booking_repository.record_payment(booking.id, payment))
        except Exception as exc:
            self._logger.error(
                "Recording payment failed",
                extra={"booking_id": str(booking.id), "error": str(exc)},
                exc_info=True
            )
            warnings.append(f"payment record not saved: {exc}")
            return replace(booking, payment=payment)
        return stored or replace(booking, payment=payment)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_schedule(self, service_date: date, time_slot: TimeSlot, now) -> None:
        if service_date < now.date():
            raise ValidationError("Service date is in the past", {"service_date": "must not be in the past"})
        if time_slot.starts_on(service_date) <= now:
            raise ValidationError("Time slot has already started", {"time_slot": "must start in the future"})

    async def _load_vendor(self, vendor_id: str) -> VendorAvailability:
        availability = await self._call("load vendor", self._vendor_catalog.get_availability(vendor_id))
        if availability is None:
            raise ValidationError(f"Vendor not found: {vendor_id}", {"vendor_id": "unknown vendor"})
        return availability

    async def _load_booking(self, booking_id: UUID) -> Booking:
        booking = await self._call("load booking", self._booking_repository.get(booking_id))
        if booking is None:
            raise BookingNotFound(f"Booking not found: {booking_id}", {"booking_id": str(booking_id)})
        return booking

    @staticmethod
    def _ensure_visible(booking: Booking, actor_role: ActorRole, actor_id: Optional[str]) -> None:
        if not booking.is_visible_to(actor_role, actor_id):
            raise BookingAccessDenied(
                f"Booking {booking.id} is not accessible as {actor_role.value}",
                {"booking_id": str(booking.id), "role": actor_role.value}
            )

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        if self._call_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._call_timeout)

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a collaborator, converting failures to ExternalServiceError."""
        try:
            return await self._with_timeout(awaitable)
        except BookingError:
            raise
        except asyncio.TimeoutError as exc:
            self._logger.error(f"Timed out: {operation}", extra={"operation": operation})
            raise ExternalServiceError(f"{operation} timed out", {"operation": operation}) from exc
        except Exception as exc:
            self._logger.error(
                f"Failed: {operation}",
                extra={"operation": operation, "error": str(exc)},
                exc_info=True
            )
            raise ExternalServiceError(f"{operation} failed: {exc}", {"operation": operation}) from exc

    async def _best_effort(self, description: str, awaitable: Awaitable[None]) -> Optional[str]:
        """Run a side effect whose failure is logged and reported, never raised."""
        try:
            await self._with_timeout(awaitable)
        except Exception as exc:
            self._logger.error(
                f"Best-effort step failed: {description}",
                extra={"step": description, "error": str(exc)},
                exc_info=True
            )
            return f"{description} failed: {exc}"
        return None
