"""Shared fixtures for booking engine tests."""

import pytest
from datetime import date, datetime, time
from decimal import Decimal

from src.marketplace_booking.application.ports.clock import FixedClock
from src.marketplace_booking.domain.entities.booking import (
    Booking,
    BookingStatus,
    LineItem,
    PaymentInfo,
    PaymentMethod,
    PaymentStatus,
    PricingBreakdown,
    StatusHistoryEntry,
)
from src.marketplace_booking.domain.entities.vendor import (
    OperatingHours,
    VendorAvailability,
    VendorService,
    Weekday,
)
from src.marketplace_booking.domain.value_objects.time_slot import TimeSlot

# Friday; the following Monday is 2025-06-09, ten days out.
NOW = datetime(2025, 5, 30, 9, 0)
MONDAY = date(2025, 6, 9)


@pytest.fixture
def clock():
    """Clock pinned to Friday 2025-05-30 09:00."""
    return FixedClock(NOW)


@pytest.fixture
def vendor():
    """Vendor open weekdays 09:00-17:00 with three services."""
    weekday_hours = OperatingHours(open=time(9, 0), close=time(17, 0))
    return VendorAvailability(
        vendor_id="vendor-1",
        operating_hours={
            day: weekday_hours
            for day in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY)
        },
        services=(
            VendorService(id="svc-haircut", name="Haircut", price=Decimal("65.00"), duration_minutes=60),
            VendorService(id="svc-trim", name="Beard Trim", price=Decimal("20.00"), duration_minutes=15),
            VendorService(id="svc-retired", name="Perm", price=Decimal("300.00"), duration_minutes=120, active=False),
        ),
    )


@pytest.fixture
def make_booking():
    """Build a stored-looking booking without going through the engine."""

    def _make(
        status=BookingStatus.CONFIRMED,
        service_date=MONDAY,
        start=time(10, 0),
        end=time(11, 0),
        total=Decimal("200.00"),
        payment_status=PaymentStatus.PENDING,
        customer_id="customer-1",
        vendor_id="vendor-1",
        created_at=NOW,
    ):
        paid = total if payment_status == PaymentStatus.PAID else Decimal("0.00")
        return Booking(
            customer_id=customer_id,
            vendor_id=vendor_id,
            line_items=(LineItem("svc-x", "Service", total, 1, 60),),
            service_date=service_date,
            time_slot=TimeSlot(start_time=start, end_time=end),
            pricing=PricingBreakdown(
                subtotal=total,
                discount=Decimal("0.00"),
                tax=Decimal("0.00"),
                service_fee=Decimal("0.00"),
                total=total,
                currency="ZAR",
            ),
            payment=PaymentInfo(method=PaymentMethod.CARD, status=payment_status, paid_amount=paid),
            status=status,
            status_history=(StatusHistoryEntry(status, customer_id, created_at, "Booking created"),),
            verification_code="ABC123",
            created_at=created_at,
            updated_at=created_at,
        )

    return _make
