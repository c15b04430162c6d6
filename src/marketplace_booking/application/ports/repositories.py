"""Port interfaces for repositories (Dependency Inversion Principle)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import List, NamedTuple, Optional, TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from src.marketplace_booking.domain.entities.booking import (
        Booking,
        BookingStatus,
        CancellationRecord,
        PaymentInfo,
        StatusHistoryEntry,
    )
    from src.marketplace_booking.domain.entities.vendor import VendorAvailability


class ReservationResult(NamedTuple):
    """Outcome of an atomic slot reservation."""
    booking: Optional["Booking"]
    conflict: bool


class StatusUpdateResult(NamedTuple):
    """Outcome of a versioned status update.

    ``stale`` means the expected version no longer matched; ``conflict`` means
    re-activating the booking would double-book its slot.
    """
    booking: Optional["Booking"]
    stale: bool = False
    conflict: bool = False


@dataclass(frozen=True)
class BookingQuery:
    """Filters and paging for booking listings."""
    customer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    status: Optional["BookingStatus"] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    offset: int = 0
    limit: int = 10


@dataclass(frozen=True)
class BookingPage:
    """One page of a booking listing, newest first."""
    items: List["Booking"] = field(default_factory=list)
    total: int = 0


class BookingRepository(ABC):
    """Port interface for booking repository.

    ``reserve_slot`` and ``update_status`` must be atomic with respect to
    concurrent callers: at most one active booking may hold an overlapping
    slot for a vendor and date, and a status update only applies if the
    stored version still equals ``expected_version``.
    """

    @abstractmethod
    async def reserve_slot(self, booking: "Booking") -> ReservationResult:
        """Persist a new booking unless its slot is already held."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, booking_id: UUID) -> Optional["Booking"]:
        """Find booking by ID."""
        raise NotImplementedError

    @abstractmethod
    async def update_status(
        self,
        booking_id: UUID,
        expected_version: int,
        new_status: "BookingStatus",
        history_entry: "StatusHistoryEntry",
        cancellation: Optional["CancellationRecord"] = None,
    ) -> StatusUpdateResult:
        """Apply a status change if the stored version matches."""
        raise NotImplementedError

    @abstractmethod
    async def record_payment(self, booking_id: UUID, payment: "PaymentInfo") -> Optional["Booking"]:
        """Replace the payment record of a booking."""
        raise NotImplementedError

    @abstractmethod
    async def list_active_by_vendor_and_date(self, vendor_id: str, service_date: date) -> List["Booking"]:
        """Find bookings occupying slots for a vendor on a date."""
        raise NotImplementedError

    @abstractmethod
    async def has_customer_booked_vendor(self, customer_id: str, vendor_id: str) -> bool:
        """Check if the customer has any earlier booking with the vendor."""
        raise NotImplementedError

    @abstractmethod
    async def search(self, query: BookingQuery) -> BookingPage:
        """List bookings matching the query."""
        raise NotImplementedError


class VendorCatalog(ABC):
    """Port interface for the vendor hours and services read model."""

    @abstractmethod
    async def get_availability(self, vendor_id: str) -> Optional["VendorAvailability"]:
        """Snapshot of a vendor's hours, services and booking policy."""
        raise NotImplementedError
