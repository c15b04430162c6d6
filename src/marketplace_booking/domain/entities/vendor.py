"""Vendor availability read model consumed by the booking engine."""

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple


class Weekday(Enum):
    """Day of week keyed the way ``date.weekday()`` counts."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())


@dataclass(frozen=True)
class OperatingHours:
    """Opening window for one weekday, half-open ``[open, close)``."""

    open: time
    close: time
    is_open: bool = True

    def __post_init__(self) -> None:
        if self.is_open and self.open >= self.close:
            raise ValueError("Opening time must be before closing time")


@dataclass(frozen=True)
class VendorService:
    """One entry of a vendor's service catalog."""

    id: str
    name: str
    price: Decimal
    duration_minutes: int
    active: bool = True


@dataclass(frozen=True)
class VendorAvailability:
    """Point-in-time snapshot of a vendor's hours, catalog and booking policy."""

    vendor_id: str
    operating_hours: Dict[Weekday, OperatingHours] = field(default_factory=dict)
    services: Tuple[VendorService, ...] = ()
    auto_confirm_bookings: bool = False
    is_active: bool = True

    def hours_for(self, day: date) -> Optional[OperatingHours]:
        """Return the opening window for a calendar date, if any."""
        return self.operating_hours.get(Weekday.of(day))

    def find_service(self, service_id: str) -> Optional[VendorService]:
        for service in self.services:
            if service.id == service_id:
                return service
        return None
