"""SQLAlchemy database models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Time,
    Uuid,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Must list the values of ACTIVE_STATUSES.
ACTIVE_STATUS_SQL = "status IN ('pending_approval', 'confirmed', 'in_progress')"


class BookingModel(Base):
    """SQLAlchemy model for bookings.

    Money is stored as integer cents. ``version`` is SQLAlchemy's version
    counter, so a flush against a row changed by someone else raises
    ``StaleDataError``.
    """

    __tablename__ = "bookings"

    # Primary key
    id = Column(Uuid, primary_key=True, default=uuid4)

    # Parties
    customer_id = Column(String(64), nullable=False, index=True)
    vendor_id = Column(String(64), nullable=False, index=True)

    # Slot
    service_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(32), nullable=False)

    # Frozen catalog snapshot and lifecycle records
    line_items = Column(JSON, nullable=False)
    status_history = Column(JSON, nullable=False)
    cancellation = Column(JSON, nullable=True)

    # Pricing
    subtotal_cents = Column(Integer, nullable=False)
    discount_cents = Column(Integer, nullable=False)
    tax_cents = Column(Integer, nullable=False)
    service_fee_cents = Column(Integer, nullable=False)
    total_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    # Payment
    payment_method = Column(String(32), nullable=False)
    payment_status = Column(String(32), nullable=False)
    payment_reference = Column(String(128), nullable=True)
    paid_cents = Column(Integer, nullable=False, default=0)
    refunded_cents = Column(Integer, nullable=False, default=0)

    special_requests = Column(Text, nullable=False, default="")
    verification_code = Column(String(16), nullable=False, default="")

    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_bookings_vendor_date", "vendor_id", "service_date"),
        # At most one active booking per exact vendor slot.
        Index(
            "uq_bookings_active_slot",
            "vendor_id", "service_date", "start_time", "end_time",
            unique=True,
            postgresql_where=text(ACTIVE_STATUS_SQL),
            sqlite_where=text(ACTIVE_STATUS_SQL),
        ),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BookingModel(id={self.id}, vendor_id='{self.vendor_id}', status='{self.status}')>"


class VendorModel(Base):
    """SQLAlchemy model for the vendor availability read model."""

    __tablename__ = "vendors"

    vendor_id = Column(String(64), primary_key=True)

    # {"monday": {"open": "09:00", "close": "17:00", "is_open": true}, ...}
    operating_hours = Column(JSON, nullable=False, default=dict)
    # [{"id": ..., "name": ..., "price": "65.00", "duration_minutes": 60, "active": true}]
    services = Column(JSON, nullable=False, default=list)

    auto_confirm_bookings = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<VendorModel(vendor_id='{self.vendor_id}', active={self.is_active})>"
