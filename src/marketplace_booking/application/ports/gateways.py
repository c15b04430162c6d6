"""Port interfaces for payment and notification collaborators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from src.marketplace_booking.domain.entities.booking import (
        Booking,
        BookingStatus,
        PaymentMethod,
        PaymentStatus,
    )


@dataclass(frozen=True)
class PaymentHandle:
    """Gateway reference for a charge."""
    reference: str
    status: "PaymentStatus"


@dataclass(frozen=True)
class RefundResult:
    """Gateway answer to a refund request."""
    succeeded: bool
    amount: Decimal
    reference: Optional[str] = None
    message: str = ""


class PaymentPort(ABC):
    """Round-trip calls to the payment provider."""

    @abstractmethod
    async def create_charge(
        self,
        booking_id: UUID,
        amount: Decimal,
        currency: str,
        method: "PaymentMethod",
    ) -> PaymentHandle:
        """Charge the customer for a booking."""
        raise NotImplementedError

    @abstractmethod
    async def issue_refund(self, booking_id: UUID, amount: Decimal) -> RefundResult:
        """Return money for a booking."""
        raise NotImplementedError


class NotificationPort(ABC):
    """Fire-and-forget booking notifications."""

    @abstractmethod
    async def booking_created(self, booking: "Booking") -> None:
        raise NotImplementedError

    @abstractmethod
    async def status_changed(self, booking: "Booking", previous_status: "BookingStatus") -> None:
        raise NotImplementedError

    @abstractmethod
    async def review_requested(self, booking: "Booking") -> None:
        raise NotImplementedError
