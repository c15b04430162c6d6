"""Slot availability rules for vendor bookings."""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from ..entities.booking import Booking
from ..entities.vendor import VendorAvailability
from ..value_objects.time_slot import TimeSlot


class AvailabilityChecker:
    """Decides whether a vendor can take a booking for a date and slot.

    Pure over its inputs. The repository re-validates during the atomic
    reservation, so this is a pre-check and not the source of truth.
    """

    def rejection_reason(
        self,
        availability: VendorAvailability,
        service_date: date,
        time_slot: TimeSlot,
        existing_bookings: Iterable[Booking],
    ) -> Optional[str]:
        """Return why the slot cannot be booked, or ``None`` if it can."""
        if not availability.is_active:
            return "vendor is not accepting bookings"

        hours = availability.hours_for(service_date)
        if hours is None or not hours.is_open:
            return f"vendor is closed on {service_date.strftime('%A')}"

        if not time_slot.within(hours.open, hours.close):
            return (
                f"slot {time_slot} is outside operating hours "
                f"{hours.open.strftime('%H:%M')} - {hours.close.strftime('%H:%M')}"
            )

        for booking in existing_bookings:
            if booking.occupies(availability.vendor_id, service_date, time_slot):
                return f"slot {time_slot} overlaps booking {booking.id}"

        return None

    def is_available(
        self,
        availability: VendorAvailability,
        service_date: date,
        time_slot: TimeSlot,
        existing_bookings: Iterable[Booking],
    ) -> bool:
        """Check if the vendor is open and the slot is free."""
        return self.rejection_reason(availability, service_date, time_slot, existing_bookings) is None


class AvailableSlotFinder:
    """Enumerates bookable slots of a given length within a vendor's day."""

    def __init__(self, checker: Optional[AvailabilityChecker] = None):
        self._checker = checker or AvailabilityChecker()

    def find(
        self,
        availability: VendorAvailability,
        service_date: date,
        duration_minutes: int,
        existing_bookings: Iterable[Booking],
        step_minutes: Optional[int] = None,
    ) -> List[TimeSlot]:
        """Generate every free slot for the date, stepping from opening time."""
        if duration_minutes <= 0:
            raise ValueError("Slot duration must be positive")
        step = step_minutes or duration_minutes
        if step <= 0:
            raise ValueError("Slot step must be positive")

        hours = availability.hours_for(service_date)
        if hours is None or not hours.is_open:
            return []

        bookings = list(existing_bookings)
        closes_at = datetime.combine(service_date, hours.close)
        cursor = datetime.combine(service_date, hours.open)
        length = timedelta(minutes=duration_minutes)

        slots = []
        while cursor + length <= closes_at:
            slot = TimeSlot(start_time=cursor.time(), end_time=(cursor + length).time())
            if self._checker.is_available(availability, service_date, slot, bookings):
                slots.append(slot)
            cursor += timedelta(minutes=step)

        return slots
