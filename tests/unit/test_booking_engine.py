"""Unit tests for the booking engine application service."""

import asyncio
import pytest
from dataclasses import replace
from datetime import date, datetime, time
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

from src.marketplace_booking.application.ports.clock import FixedClock
from src.marketplace_booking.application.ports.gateways import (
    NotificationPort,
    PaymentHandle,
    PaymentPort,
    RefundResult,
)
from src.marketplace_booking.application.ports.repositories import BookingQuery, StatusUpdateResult
from src.marketplace_booking.application.services.booking_engine import (
    BookingEngine,
    BookingRequest,
    generate_verification_code,
)
from src.marketplace_booking.domain.entities.booking import (
    ActorRole,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
)
from src.marketplace_booking.domain.exceptions import (
    BookingAccessDenied,
    BookingNotFound,
    ExternalServiceError,
    InvalidLineItem,
    InvalidTransition,
    SlotConflict,
    SlotUnavailable,
    StaleBooking,
    ValidationError,
)
from src.marketplace_booking.domain.services.pricing import RequestedService
from src.marketplace_booking.domain.value_objects.time_slot import TimeSlot
from src.marketplace_booking.infrastructure.repositories.memory_repositories import (
    InMemoryBookingRepository,
    InMemoryVendorCatalog,
)

MONDAY = date(2025, 6, 9)


class StaleReadRepository(InMemoryBookingRepository):
    """Reports no existing bookings so callers race straight to reserve_slot."""

    async def list_active_by_vendor_and_date(self, vendor_id, service_date):
        await asyncio.sleep(0)
        return []


def booking_request(customer_id="customer-1", start="10:00", end="11:00", service_date=MONDAY, services=None):
    return BookingRequest(
        customer_id=customer_id,
        vendor_id="vendor-1",
        services=services or [RequestedService("svc-haircut")],
        service_date=service_date,
        time_slot=TimeSlot.parse(start, end),
        payment_method=PaymentMethod.CARD,
        special_requests="Ring the bell twice",
    )


class TestBookingEngine:
    """Test cases for BookingEngine."""

    @pytest.fixture
    def repository(self):
        return InMemoryBookingRepository()

    @pytest.fixture
    def catalog(self, vendor):
        return InMemoryVendorCatalog([vendor])

    @pytest.fixture
    def payment_port(self):
        port = Mock(spec=PaymentPort)
        port.create_charge = AsyncMock(return_value=PaymentHandle(reference="ch_1", status=PaymentStatus.PAID))
        port.issue_refund = AsyncMock(
            side_effect=lambda booking_id, amount: RefundResult(succeeded=True, amount=amount, reference="rf_1")
        )
        return port

    @pytest.fixture
    def notification_port(self):
        port = Mock(spec=NotificationPort)
        port.booking_created = AsyncMock()
        port.status_changed = AsyncMock()
        port.review_requested = AsyncMock()
        return port

    @pytest.fixture
    def engine(self, repository, catalog, payment_port, notification_port, clock):
        return BookingEngine(
            booking_repository=repository,
            vendor_catalog=catalog,
            payment_port=payment_port,
            notification_port=notification_port,
            clock=clock,
            call_timeout=0.5,
            code_generator=lambda: "XYZ789",
        )

    # ------------------------------------------------------------------
    # create_booking
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_create_booking_first_time_early_bird(self, engine, notification_port):
        """New customer, ten days out, $65 service, vendor without auto-confirm."""
        booking = await engine.create_booking(booking_request())

        assert booking.status == BookingStatus.PENDING_APPROVAL
        assert booking.pricing.subtotal == Decimal("65.00")
        assert booking.pricing.discount == Decimal("19.50")
        assert booking.pricing.total == Decimal("54.61")
        assert booking.payment.status == PaymentStatus.PENDING
        assert booking.payment.method == PaymentMethod.CARD
        assert booking.verification_code == "XYZ789"
        assert booking.special_requests == "Ring the bell twice"
        assert booking.version == 1
        assert len(booking.status_history) == 1
        assert booking.status_history[0].changed_by == "customer-1"
        notification_port.booking_created.assert_awaited_once_with(booking)

    @pytest.mark.asyncio
    async def test_auto_confirm_vendor(self, engine, catalog, vendor):
        catalog.save(replace(vendor, auto_confirm_bookings=True))

        booking = await engine.create_booking(booking_request())

        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_returning_customer_gets_no_first_time_discount(self, engine):
        await engine.create_booking(booking_request(start="09:00", end="10:00"))

        second = await engine.create_booking(booking_request(start="11:00", end="12:00"))

        # Early-bird only: 10% of 65
        assert second.pricing.discount == Decimal("6.50")

    @pytest.mark.asyncio
    async def test_overlapping_request_is_unavailable(self, engine):
        await engine.create_booking(booking_request(start="10:00", end="11:00"))

        with pytest.raises(SlotUnavailable, match="not available"):
            await engine.create_booking(booking_request(customer_id="customer-2", start="10:30", end="11:30"))

    @pytest.mark.asyncio
    async def test_adjacent_request_succeeds(self, engine):
        await engine.create_booking(booking_request(start="10:00", end="11:00"))

        booking = await engine.create_booking(booking_request(customer_id="customer-2", start="11:00", end="12:00"))

        assert booking.time_slot.start_time == time(11, 0)

    @pytest.mark.asyncio
    async def test_closed_day_is_unavailable(self, engine):
        with pytest.raises(SlotUnavailable, match="closed"):
            await engine.create_booking(booking_request(service_date=date(2025, 6, 8)))

    @pytest.mark.asyncio
    async def test_unknown_vendor(self, engine):
        request = replace(booking_request(), vendor_id="ghost")

        with pytest.raises(ValidationError, match="Vendor not found"):
            await engine.create_booking(request)

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, engine):
        with pytest.raises(ValidationError, match="in the past"):
            await engine.create_booking(booking_request(service_date=date(2025, 5, 29)))

    @pytest.mark.asyncio
    async def test_slot_already_started_rejected(self, engine):
        """Clock is Friday 09:00; a Friday 09:00 slot has already begun."""
        with pytest.raises(ValidationError, match="already started"):
            await engine.create_booking(booking_request(service_date=date(2025, 5, 30), start="09:00", end="10:00"))

    @pytest.mark.asyncio
    async def test_slot_too_short_for_services(self, engine):
        with pytest.raises(ValidationError, match="cannot fit"):
            await engine.create_booking(booking_request(start="10:00", end="10:30"))

    @pytest.mark.asyncio
    async def test_unknown_service(self, engine, repository):
        with pytest.raises(InvalidLineItem):
            await engine.create_booking(booking_request(services=[RequestedService("missing")]))

        assert await repository.list_active_by_vendor_and_date("vendor-1", MONDAY) == []

    @pytest.mark.asyncio
    async def test_concurrent_requests_for_same_slot(self, catalog, payment_port, notification_port, clock):
        """Both requests pass the pre-check; the reservation lets exactly one through."""
        repository = StaleReadRepository()
        engine = BookingEngine(repository, catalog, payment_port, notification_port, clock)

        results = await asyncio.gather(
            engine.create_booking(booking_request(customer_id="customer-1")),
            engine.create_booking(booking_request(customer_id="customer-2")),
            return_exceptions=True,
        )

        successes = [result for result in results if not isinstance(result, Exception)]
        failures = [result for result in results if isinstance(result, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], SlotConflict)
        assert (await repository.search(BookingQuery())).total == 1

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_creation(self, engine, notification_port, repository):
        notification_port.booking_created.side_effect = RuntimeError("smtp down")

        booking = await engine.create_booking(booking_request())

        assert await repository.get(booking.id) is not None

    @pytest.mark.asyncio
    async def test_catalog_timeout_raises_external_service_error(self, repository, payment_port, notification_port, clock):
        async def slow_lookup(vendor_id):
            await asyncio.sleep(1)

        catalog = Mock()
        catalog.get_availability = slow_lookup
        engine = BookingEngine(repository, catalog, payment_port, notification_port, clock, call_timeout=0.01)

        with pytest.raises(ExternalServiceError, match="timed out"):
            await engine.create_booking(booking_request())

    @pytest.mark.asyncio
    async def test_repository_failure_raises_external_service_error(self, catalog, payment_port, notification_port, clock):
        repository = Mock()
        repository.list_active_by_vendor_and_date = AsyncMock(side_effect=ConnectionError("db gone"))
        engine = BookingEngine(repository, catalog, payment_port, notification_port, clock)

        with pytest.raises(ExternalServiceError, match="db gone"):
            await engine.create_booking(booking_request())

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_vendor_confirms_pending_booking(self, engine, notification_port):
        booking = await engine.create_booking(booking_request())

        outcome = await engine.transition_status(
            booking.id, BookingStatus.CONFIRMED, ActorRole.VENDOR, actor_id="vendor-1"
        )

        assert outcome.booking.status == BookingStatus.CONFIRMED
        assert outcome.previous_status == BookingStatus.PENDING_APPROVAL
        assert outcome.booking.version == 2
        assert outcome.warnings == ()
        notification_port.status_changed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_vendor_starts_and_customer_cannot_complete(self, engine, repository, make_booking):
        booking = make_booking(status=BookingStatus.CONFIRMED)
        await repository.reserve_slot(booking)

        outcome = await engine.transition_status(booking.id, BookingStatus.IN_PROGRESS, ActorRole.VENDOR)
        assert outcome.booking.status == BookingStatus.IN_PROGRESS
        assert len(outcome.booking.status_history) == 2
        assert outcome.booking.status_history[-1].changed_by == "vendor"

        with pytest.raises(InvalidTransition):
            await engine.transition_status(booking.id, BookingStatus.COMPLETED, ActorRole.CUSTOMER)

        stored = await repository.get(booking.id)
        assert stored.status == BookingStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_completion_charges_and_requests_review(self, engine, repository, make_booking, payment_port, notification_port):
        booking = make_booking(status=BookingStatus.IN_PROGRESS)
        await repository.reserve_slot(booking)

        outcome = await engine.transition_status(booking.id, BookingStatus.COMPLETED, ActorRole.VENDOR)

        assert outcome.booking.status == BookingStatus.COMPLETED
        assert outcome.booking.payment.status == PaymentStatus.PAID
        assert outcome.booking.payment.paid_amount == Decimal("200.00")
        assert outcome.booking.payment.reference == "ch_1"
        payment_port.create_charge.assert_awaited_once_with(
            booking.id, Decimal("200.00"), "ZAR", PaymentMethod.CARD
        )
        notification_port.review_requested.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_completion_skips_charge_when_already_paid(self, engine, repository, make_booking, payment_port):
        booking = make_booking(status=BookingStatus.IN_PROGRESS, payment_status=PaymentStatus.PAID)
        await repository.reserve_slot(booking)

        await engine.transition_status(booking.id, BookingStatus.COMPLETED, ActorRole.ADMIN)

        payment_port.create_charge.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_failure_becomes_warning(self, engine, repository, make_booking, payment_port):
        booking = make_booking(status=BookingStatus.IN_PROGRESS)
        await repository.reserve_slot(booking)
        payment_port.create_charge.side_effect = RuntimeError("gateway 502")

        outcome = await engine.transition_status(booking.id, BookingStatus.COMPLETED, ActorRole.VENDOR)

        assert outcome.booking.status == BookingStatus.COMPLETED
        assert any("payment finalization failed" in warning for warning in outcome.warnings)
        assert (await repository.get(booking.id)).status == BookingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_admin_cancels_completed_booking(self, engine, repository, make_booking):
        booking = make_booking(status=BookingStatus.COMPLETED)
        await repository.reserve_slot(booking)

        outcome = await engine.transition_status(
            booking.id, BookingStatus.CANCELLED, ActorRole.ADMIN, notes="override"
        )

        assert outcome.booking.status == BookingStatus.CANCELLED
        assert outcome.booking.cancellation.reason == "override"

    @pytest.mark.asyncio
    async def test_stale_version_is_reported(self, engine, make_booking):
        booking = make_booking(status=BookingStatus.PENDING_APPROVAL)
        repository = Mock()
        repository.get = AsyncMock(return_value=booking)
        repository.update_status = AsyncMock(return_value=StatusUpdateResult(booking=booking, stale=True))
        engine._booking_repository = repository

        with pytest.raises(StaleBooking):
            await engine.transition_status(booking.id, BookingStatus.CONFIRMED, ActorRole.VENDOR)

    @pytest.mark.asyncio
    async def test_missing_booking(self, engine):
        with pytest.raises(BookingNotFound):
            await engine.transition_status(uuid4(), BookingStatus.CONFIRMED, ActorRole.ADMIN)

    @pytest.mark.asyncio
    async def test_vendor_cannot_touch_other_vendors_booking(self, engine, repository, make_booking):
        booking = make_booking(vendor_id="vendor-1")
        await repository.reserve_slot(booking)

        with pytest.raises(BookingAccessDenied):
            await engine.transition_status(
                booking.id, BookingStatus.IN_PROGRESS, ActorRole.VENDOR, actor_id="vendor-2"
            )

    @pytest.mark.asyncio
    async def test_admin_reopen_conflicts_with_new_booking(self, engine, repository, make_booking):
        cancelled = make_booking(status=BookingStatus.CANCELLED)
        replacement = make_booking(status=BookingStatus.CONFIRMED, customer_id="customer-2")
        await repository.reserve_slot(cancelled)
        await repository.reserve_slot(replacement)

        with pytest.raises(SlotConflict):
            await engine.transition_status(cancelled.id, BookingStatus.CONFIRMED, ActorRole.ADMIN)

    @pytest.mark.asyncio
    async def test_notification_failure_on_transition_is_warning(self, engine, repository, make_booking, notification_port):
        booking = make_booking(status=BookingStatus.PENDING_APPROVAL)
        await repository.reserve_slot(booking)
        notification_port.status_changed.side_effect = RuntimeError("queue full")

        outcome = await engine.transition_status(booking.id, BookingStatus.CONFIRMED, ActorRole.VENDOR)

        assert outcome.booking.status == BookingStatus.CONFIRMED
        assert outcome.warnings == ("status change notification failed: queue full",)

    # ------------------------------------------------------------------
    # cancel_booking
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_late_cancellation_of_paid_booking_refunds_half(self, engine, repository, make_booking, clock, payment_port):
        """$200 paid booking cancelled one hour before start: $100 fee, $100 refund."""
        booking = make_booking(
            status=BookingStatus.CONFIRMED,
            start=time(10, 0),
            end=time(11, 0),
            total=Decimal("200.00"),
            payment_status=PaymentStatus.PAID,
        )
        await repository.reserve_slot(booking)
        clock.set(datetime(2025, 6, 9, 9, 0))

        outcome = await engine.cancel_booking(
            booking.id, ActorRole.CUSTOMER, reason="running late", actor_id="customer-1"
        )

        assert outcome.booking.status == BookingStatus.CANCELLED
        assert outcome.booking.cancellation.fee_charged == Decimal("100.00")
        assert outcome.booking.cancellation.refund_amount == Decimal("100.00")
        assert outcome.booking.cancellation.cancelled_by == ActorRole.CUSTOMER
        assert outcome.booking.payment.refunded_amount == Decimal("100.00")
        assert outcome.booking.payment.status == PaymentStatus.PARTIALLY_REFUNDED
        payment_port.issue_refund.assert_awaited_once_with(booking.id, Decimal("100.00"))

    @pytest.mark.asyncio
    async def test_early_cancellation_refunds_everything(self, engine, repository, make_booking, payment_port):
        booking = make_booking(total=Decimal("200.00"), payment_status=PaymentStatus.PAID)
        await repository.reserve_slot(booking)

        outcome = await engine.cancel_booking(booking.id, ActorRole.CUSTOMER, actor_id="customer-1")

        assert outcome.booking.cancellation.fee_charged == Decimal("0.00")
        assert outcome.booking.payment.status == PaymentStatus.REFUNDED
        payment_port.issue_refund.assert_awaited_once_with(booking.id, Decimal("200.00"))

    @pytest.mark.asyncio
    async def test_unpaid_cancellation_issues_no_refund(self, engine, repository, make_booking, payment_port):
        booking = make_booking()
        await repository.reserve_slot(booking)

        outcome = await engine.cancel_booking(booking.id, ActorRole.VENDOR, actor_id="vendor-1")

        assert outcome.booking.cancellation.refund_amount == Decimal("0.00")
        payment_port.issue_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refund_failure_keeps_cancellation(self, engine, repository, make_booking, payment_port):
        booking = make_booking(payment_status=PaymentStatus.PAID)
        await repository.reserve_slot(booking)
        payment_port.issue_refund.side_effect = RuntimeError("provider offline")

        outcome = await engine.cancel_booking(booking.id, ActorRole.ADMIN)

        assert outcome.booking.status == BookingStatus.CANCELLED
        assert outcome.booking.payment.status == PaymentStatus.PAID
        assert any("refund" in warning for warning in outcome.warnings)

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(self, engine):
        first = await engine.create_booking(booking_request())
        await engine.cancel_booking(first.id, ActorRole.CUSTOMER, actor_id="customer-1")

        second = await engine.create_booking(booking_request(customer_id="customer-2"))

        assert second.status == BookingStatus.PENDING_APPROVAL

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel_in_progress(self, engine, repository, make_booking):
        booking = make_booking(status=BookingStatus.IN_PROGRESS)
        await repository.reserve_slot(booking)

        with pytest.raises(InvalidTransition):
            await engine.cancel_booking(booking.id, ActorRole.CUSTOMER, actor_id="customer-1")

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @pytest.mark.asyncio
    async def test_get_booking_enforces_visibility(self, engine, repository, make_booking):
        booking = make_booking()
        await repository.reserve_slot(booking)

        assert await engine.get_booking(booking.id, ActorRole.CUSTOMER, "customer-1") == booking
        with pytest.raises(BookingAccessDenied):
            await engine.get_booking(booking.id, ActorRole.CUSTOMER, "customer-2")

    @pytest.mark.asyncio
    async def test_list_bookings_scoped_to_customer(self, engine, repository, make_booking):
        await repository.reserve_slot(make_booking(customer_id="customer-1", start=time(9, 0), end=time(10, 0)))
        await repository.reserve_slot(make_booking(customer_id="customer-2", start=time(10, 0), end=time(11, 0)))

        listing = await engine.list_bookings(ActorRole.CUSTOMER, "customer-1", customer_id="customer-2")

        assert listing.total == 1
        assert listing.items[0].customer_id == "customer-1"

    @pytest.mark.asyncio
    async def test_list_bookings_pagination(self, engine, repository, make_booking):
        for hour in range(9, 14):
            await repository.reserve_slot(make_booking(
                start=time(hour, 0), end=time(hour + 1, 0), created_at=datetime(2025, 5, 1, hour, 0)
            ))

        listing = await engine.list_bookings(ActorRole.ADMIN, None, page=2, limit=2)

        assert listing.total == 5
        assert listing.total_pages == 3
        assert [booking.time_slot.start_time for booking in listing.items] == [time(11, 0), time(10, 0)]

    @pytest.mark.asyncio
    async def test_list_bookings_rejects_bad_page(self, engine):
        with pytest.raises(ValidationError):
            await engine.list_bookings(ActorRole.ADMIN, None, page=0)

    @pytest.mark.asyncio
    async def test_find_available_slots(self, engine):
        await engine.create_booking(booking_request(start="10:00", end="11:00"))

        slots = await engine.find_available_slots("vendor-1", MONDAY, 60)

        assert TimeSlot.parse("10:00", "11:00") not in slots
        assert len(slots) == 7

    @pytest.mark.asyncio
    async def test_find_available_slots_today_skips_elapsed(self, engine):
        """Clock is Friday 09:00, so the 09:00 slot has started."""
        slots = await engine.find_available_slots("vendor-1", date(2025, 5, 30), 60)

        assert slots[0] == TimeSlot.parse("10:00", "11:00")

    @pytest.mark.asyncio
    async def test_find_available_slots_in_past(self, engine):
        with pytest.raises(ValidationError):
            await engine.find_available_slots("vendor-1", date(2025, 5, 1), 60)


class TestVerificationCode:
    """Test cases for verification code generation."""

    def test_code_shape(self):
        code = generate_verification_code()

        assert len(code) == 6
        assert code.isalnum()
        assert code == code.upper()


class TestFixedClock:
    """Test cases for the manually driven clock."""

    def test_advance(self):
        clock = FixedClock(datetime(2025, 1, 1, 12, 0))

        clock.advance(hours=2)

        assert clock.now() == datetime(2025, 1, 1, 14, 0)
