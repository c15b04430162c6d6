"""Booking engine error taxonomy."""

from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for every error raised by the booking engine."""

    code = "booking_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(BookingError, ValueError):
    """Malformed input, reported with field-level detail."""

    code = "validation_error"

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message, details={"fields": field_errors or {}})
        self.field_errors = field_errors or {}


class SlotUnavailable(BookingError):
    """The availability pre-check rejected the requested slot."""

    code = "slot_unavailable"


class SlotConflict(BookingError):
    """The atomic reservation lost a race for the slot."""

    code = "slot_conflict"


class InvalidLineItem(BookingError):
    """A referenced service is unknown or inactive at pricing time."""

    code = "invalid_line_item"


class InvalidTransition(BookingError):
    """The requested status change is not permitted for the actor's role."""

    code = "invalid_transition"


class StaleBooking(BookingError):
    """Optimistic concurrency check failed; re-read and retry."""

    code = "stale_booking"


class BookingNotFound(BookingError):
    """No booking exists with the given id."""

    code = "booking_not_found"


class BookingAccessDenied(BookingError):
    """The actor is neither a party to the booking nor an admin."""

    code = "booking_access_denied"


class ExternalServiceError(BookingError):
    """A repository or port call failed or timed out."""

    code = "external_service_error"
