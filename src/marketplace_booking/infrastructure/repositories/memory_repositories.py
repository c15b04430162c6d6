"""In-memory repository implementations for testing and development."""

import threading
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from src.marketplace_booking.application.ports.repositories import (
    BookingPage,
    BookingQuery,
    BookingRepository,
    ReservationResult,
    StatusUpdateResult,
    VendorCatalog,
)
from src.marketplace_booking.domain.entities.booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    CancellationRecord,
    PaymentInfo,
    StatusHistoryEntry,
)
from src.marketplace_booking.domain.entities.vendor import VendorAvailability


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of booking repository.

    A single lock guards every access to the store, reads included. No
    ``await`` happens while it is held, so it serializes both coroutines on
    one loop and callers on different threads. Callers get copies, never the
    stored objects.
    """

    def __init__(self, bookings: Optional[Iterable[Booking]] = None):
        self._bookings: Dict[UUID, Booking] = {}
        self._lock = threading.Lock()
        for booking in bookings or ():
            self._bookings[booking.id] = booking

    async def reserve_slot(self, booking: Booking) -> ReservationResult:
        """Store the booking unless an active one overlaps its slot."""
        with self._lock:
            if self._slot_taken(booking):
                return ReservationResult(booking=None, conflict=True)
            stored = replace(booking, version=1)
            self._bookings[stored.id] = stored
            return ReservationResult(booking=replace(stored), conflict=False)

    async def get(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID."""
        with self._lock:
            booking = self._bookings.get(booking_id)
            return replace(booking) if booking else None

    async def update_status(
        self,
        booking_id: UUID,
        expected_version: int,
        new_status: BookingStatus,
        history_entry: StatusHistoryEntry,
        cancellation: Optional[CancellationRecord] = None,
    ) -> StatusUpdateResult:
        """Apply a status change under compare-and-set on ``version``."""
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                return StatusUpdateResult(booking=None)
            if current.version != expected_version:
                return StatusUpdateResult(booking=replace(current), stale=True)
            if new_status in ACTIVE_STATUSES and not current.is_active and self._slot_taken(current):
                return StatusUpdateResult(booking=replace(current), conflict=True)

            updated = replace(
                current,
                status=new_status,
                status_history=current.status_history + (history_entry,),
                cancellation=cancellation,
                version=current.version + 1,
                updated_at=history_entry.changed_at,
            )
            self._bookings[booking_id] = updated
            return StatusUpdateResult(booking=replace(updated))

    async def record_payment(self, booking_id: UUID, payment: PaymentInfo) -> Optional[Booking]:
        """Replace the payment record of a booking."""
        with self._lock:
            current = self._bookings.get(booking_id)
            if current is None:
                return None
            updated = replace(current, payment=payment, version=current.version + 1)
            self._bookings[booking_id] = updated
            return replace(updated)

    async def list_active_by_vendor_and_date(self, vendor_id: str, service_date: date) -> List[Booking]:
        """Find bookings occupying slots for a vendor on a date."""
        with self._lock:
            matches = [
                replace(booking) for booking in self._bookings.values()
                if booking.vendor_id == vendor_id
                and booking.service_date == service_date
                and booking.is_active
            ]
        return sorted(matches, key=lambda booking: booking.time_slot.start_time)

    async def has_customer_booked_vendor(self, customer_id: str, vendor_id: str) -> bool:
        """Check if the customer has any earlier booking with the vendor."""
        with self._lock:
            return any(
                booking.customer_id == customer_id and booking.vendor_id == vendor_id
                for booking in self._bookings.values()
            )

    async def search(self, query: BookingQuery) -> BookingPage:
        """List bookings matching the query, newest first."""
        with self._lock:
            matches = [replace(booking) for booking in self._bookings.values() if self._matches(booking, query)]
        matches.sort(key=lambda booking: booking.created_at, reverse=True)
        return BookingPage(
            items=matches[query.offset:query.offset + query.limit],
            total=len(matches)
        )

    def _slot_taken(self, booking: Booking) -> bool:
        return any(
            other.id != booking.id
            and other.occupies(booking.vendor_id, booking.service_date, booking.time_slot)
            for other in self._bookings.values()
        )

    @staticmethod
    def _matches(booking: Booking, query: BookingQuery) -> bool:
        if query.customer_id is not None and booking.customer_id != query.customer_id:
            return False
        if query.vendor_id is not None and booking.vendor_id != query.vendor_id:
            return False
        if query.status is not None and booking.status != query.status:
            return False
        if query.date_from is not None and booking.service_date < query.date_from:
            return False
        if query.date_to is not None and booking.service_date > query.date_to:
            return False
        return True


class InMemoryVendorCatalog(VendorCatalog):
    """In-memory implementation of the vendor catalog."""

    def __init__(self, vendors: Optional[Iterable[VendorAvailability]] = None):
        self._vendors: Dict[str, VendorAvailability] = {}
        for vendor in vendors or ():
            self.save(vendor)

    def save(self, availability: VendorAvailability) -> VendorAvailability:
        """Add or replace a vendor snapshot."""
        self._vendors[availability.vendor_id] = availability
        return availability

    async def get_availability(self, vendor_id: str) -> Optional[VendorAvailability]:
        """Snapshot of a vendor's hours, services and booking policy."""
        return self._vendors.get(vendor_id)
