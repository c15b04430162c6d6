"""Demo vendor used to seed a fresh catalog."""

from datetime import time
from decimal import Decimal

from src.marketplace_booking.domain.entities.vendor import (
    OperatingHours,
    VendorAvailability,
    VendorService,
    Weekday,
)

DEMO_VENDOR_ID = "vendor-demo"


def demo_vendor() -> VendorAvailability:
    """A weekday 08:00-17:00 cleaning vendor with two services."""
    weekday_hours = OperatingHours(open=time(8, 0), close=time(17, 0))
    hours = {day: weekday_hours for day in Weekday if day not in (Weekday.SATURDAY, Weekday.SUNDAY)}
    hours[Weekday.SATURDAY] = OperatingHours(open=time(9, 0), close=time(13, 0))
    hours[Weekday.SUNDAY] = OperatingHours(open=time(0, 0), close=time(0, 1), is_open=False)

    return VendorAvailability(
        vendor_id=DEMO_VENDOR_ID,
        operating_hours=hours,
        services=(
            VendorService(id="svc-clean", name="Home Cleaning", price=Decimal("350.00"), duration_minutes=120),
            VendorService(id="svc-windows", name="Window Washing", price=Decimal("150.00"), duration_minutes=60),
        ),
    )
