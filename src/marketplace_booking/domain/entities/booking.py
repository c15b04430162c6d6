"""Booking entity and its embedded records."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID, uuid4

from ..value_objects.money import ZERO, round_money
from ..value_objects.time_slot import TimeSlot


class BookingStatus(Enum):
    """Booking status enumeration."""
    PENDING_APPROVAL = "pending_approval"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy a slot.
ACTIVE_STATUSES = frozenset({
    BookingStatus.PENDING_APPROVAL,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


class ActorRole(Enum):
    """Capacity in which a caller acts on a booking."""
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


class PaymentMethod(Enum):
    """Payment method chosen at booking time."""
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


@dataclass(frozen=True)
class LineItem:
    """A vendor service frozen into a booking at creation time."""

    service_id: str
    name: str
    unit_price: Decimal
    quantity: int
    duration_minutes: int

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def total_duration_minutes(self) -> int:
        return self.duration_minutes * self.quantity


@dataclass(frozen=True)
class PricingBreakdown:
    """Monetary breakdown of a booking; all amounts in cents precision."""

    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    service_fee: Decimal
    total: Decimal
    currency: str

    def __post_init__(self) -> None:
        for name in ("subtotal", "discount", "tax", "service_fee", "total"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.discount > self.subtotal:
            raise ValueError("discount cannot exceed subtotal")
        expected = round_money(self.subtotal - self.discount + self.tax + self.service_fee)
        if self.total != expected:
            raise ValueError(f"total {self.total} does not match components ({expected})")

    @property
    def discounted_subtotal(self) -> Decimal:
        return self.subtotal - self.discount


@dataclass(frozen=True)
class PaymentInfo:
    """Payment record embedded in a booking."""

    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    reference: Optional[str] = None
    paid_amount: Decimal = ZERO
    refunded_amount: Decimal = ZERO

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID


@dataclass(frozen=True)
class CancellationRecord:
    """Who cancelled, when, and what it cost."""

    cancelled_by: ActorRole
    cancelled_at: datetime
    reason: str
    fee_charged: Decimal
    refund_amount: Decimal


@dataclass(frozen=True)
class StatusHistoryEntry:
    """One append-only lifecycle step."""

    status: BookingStatus
    changed_by: str
    changed_at: datetime
    notes: str = ""


@dataclass(eq=False)
class Booking:
    """Booking entity: a reserved, priced, state-tracked vendor slot.

    Instances are snapshots. Every lifecycle change produces a new instance
    through ``dataclasses.replace`` and is persisted by the repository, which
    owns the authoritative copy and bumps ``version`` on each write.
    """

    customer_id: str
    vendor_id: str
    line_items: Tuple[LineItem, ...]
    service_date: date
    time_slot: TimeSlot
    pricing: PricingBreakdown
    payment: PaymentInfo
    status: BookingStatus = BookingStatus.PENDING_APPROVAL
    cancellation: Optional[CancellationRecord] = None
    status_history: Tuple[StatusHistoryEntry, ...] = ()
    special_requests: str = ""
    verification_code: str = ""
    id: UUID = field(default_factory=uuid4)
    version: int = 1
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        """Check if booking currently occupies its slot."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def service_starts_at(self) -> datetime:
        """Service date combined with slot start (vendor wall-clock)."""
        return self.time_slot.starts_on(self.service_date)

    def occupies(self, vendor_id: str, service_date: date, time_slot: TimeSlot) -> bool:
        """Check if this booking blocks the given vendor slot."""
        return (
            self.is_active
            and self.vendor_id == vendor_id
            and self.service_date == service_date
            and self.time_slot.overlaps(time_slot)
        )

    def is_visible_to(self, role: ActorRole, actor_id: Optional[str]) -> bool:
        """Customers and vendors see only their own bookings; admins see all."""
        if role == ActorRole.ADMIN:
            return True
        if role == ActorRole.CUSTOMER:
            return actor_id == self.customer_id
        return actor_id == self.vendor_id

    def __eq__(self, other: object) -> bool:
        """Check equality based on booking ID."""
        if not isinstance(other, Booking):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on booking ID."""
        return hash(self.id)

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.vendor_id}, {self.service_date} {self.time_slot}, {self.status.value})"
