"""Notification adapter that records booking events in the structured log.

Email and SMS delivery live outside this service; the log stream is the
hand-off point for the delivery worker.
"""

from src.marketplace_booking.application.ports.gateways import NotificationPort
from src.marketplace_booking.domain.entities.booking import Booking, BookingStatus
from src.marketplace_booking.infrastructure.logging import get_logger, log_booking_event


class LoggingNotificationService(NotificationPort):
    """Emits one log record per notification."""

    def __init__(self):
        self._logger = get_logger(__name__)

    async def booking_created(self, booking: Booking) -> None:
        log_booking_event(
            self._logger, "notification.created", str(booking.id),
            customer_id=booking.customer_id,
            vendor_id=booking.vendor_id,
            status=booking.status.value,
        )

    async def status_changed(self, booking: Booking, previous_status: BookingStatus) -> None:
        log_booking_event(
            self._logger, "notification.status_changed", str(booking.id),
            customer_id=booking.customer_id,
            vendor_id=booking.vendor_id,
            previous_status=previous_status.value,
            status=booking.status.value,
        )

    async def review_requested(self, booking: Booking) -> None:
        log_booking_event(
            self._logger, "notification.review_requested", str(booking.id),
            customer_id=booking.customer_id,
            vendor_id=booking.vendor_id,
        )
