"""SQLAlchemy repository implementations."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

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
    ActorRole,
    Booking,
    BookingStatus,
    CancellationRecord,
    LineItem,
    PaymentInfo,
    PaymentMethod,
    PaymentStatus,
    PricingBreakdown,
    StatusHistoryEntry,
)
from src.marketplace_booking.domain.entities.vendor import (
    OperatingHours,
    VendorAvailability,
    VendorService,
    Weekday,
)
from src.marketplace_booking.domain.value_objects.money import from_minor_units, to_minor_units
from src.marketplace_booking.domain.value_objects.time_slot import TimeSlot
from src.marketplace_booking.infrastructure.database.connection import DatabaseManager
from src.marketplace_booking.infrastructure.database.models import BookingModel, VendorModel
from src.marketplace_booking.infrastructure.logging import get_logger, log_database_operation

ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_STATUSES]


class SQLAlchemyBookingRepository(BookingRepository):
    """SQLAlchemy implementation of booking repository.

    Each call runs in its own transaction. Reservations are protected by the
    partial unique index on active slots; on PostgreSQL an advisory lock per
    vendor and date also serializes the overlap check with the insert.
    """

    def __init__(self, database: DatabaseManager):
        self._database = database
        self._logger = get_logger(__name__)

    async def reserve_slot(self, booking: Booking) -> ReservationResult:
        """Insert a booking unless an active one overlaps its slot."""
        log_database_operation(
            self._logger, "INSERT", "BookingModel",
            booking_id=str(booking.id), vendor_id=booking.vendor_id
        )
        try:
            async with self._database.get_session() as session:
                await self._lock_vendor_day(session, booking.vendor_id, booking.service_date)
                if await self._overlap_exists(session, booking):
                    return ReservationResult(booking=None, conflict=True)
                model = self._entity_to_model(booking)
                session.add(model)
                await session.flush()
                stored = self._model_to_entity(model)
        except IntegrityError:
            self._logger.info(
                "Slot reservation rejected by unique index",
                extra={"booking_id": str(booking.id), "vendor_id": booking.vendor_id}
            )
            return ReservationResult(booking=None, conflict=True)
        return ReservationResult(booking=stored, conflict=False)

    async def get(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID."""
        async with self._database.get_session() as session:
            model = await session.get(BookingModel, booking_id)
            return self._model_to_entity(model) if model else None

    async def update_status(
        self,
        booking_id: UUID,
        expected_version: int,
        new_status: BookingStatus,
        history_entry: StatusHistoryEntry,
        cancellation: Optional[CancellationRecord] = None,
    ) -> StatusUpdateResult:
        """Apply a status change if the stored version matches."""
        log_database_operation(
            self._logger, "UPDATE", "BookingModel",
            booking_id=str(booking_id), new_status=new_status.value
        )
        try:
            async with self._database.get_session() as session:
                model = await session.get(BookingModel, booking_id)
                if model is None:
                    return StatusUpdateResult(booking=None)
                if model.version != expected_version:
                    return StatusUpdateResult(booking=self._model_to_entity(model), stale=True)

                current = self._model_to_entity(model)
                if new_status in ACTIVE_STATUSES and not current.is_active:
                    await self._lock_vendor_day(session, current.vendor_id, current.service_date)
                    if await self._overlap_exists(session, current):
                        return StatusUpdateResult(booking=current, conflict=True)

                model.status = new_status.value
                model.status_history = list(model.status_history) + [self._history_to_dict(history_entry)]
                model.cancellation = self._cancellation_to_dict(cancellation) if cancellation else None
                model.updated_at = history_entry.changed_at
                await session.flush()
                updated = self._model_to_entity(model)
        except StaleDataError:
            return StatusUpdateResult(booking=None, stale=True)
        except IntegrityError:
            return StatusUpdateResult(booking=None, conflict=True)
        return StatusUpdateResult(booking=updated)

    async def record_payment(self, booking_id: UUID, payment: PaymentInfo) -> Optional[Booking]:
        """Replace the payment record of a booking."""
        async with self._database.get_session() as session:
            model = await session.get(BookingModel, booking_id)
            if model is None:
                return None
            self._apply_payment(model, payment)
            await session.flush()
            return self._model_to_entity(model)

    async def list_active_by_vendor_and_date(self, vendor_id: str, service_date: date) -> List[Booking]:
        """Find bookings occupying slots for a vendor on a date."""
        async with self._database.get_session() as session:
            stmt = select(BookingModel).where(
                and_(
                    BookingModel.vendor_id == vendor_id,
                    BookingModel.service_date == service_date,
                    BookingModel.status.in_(ACTIVE_STATUS_VALUES),
                )
            ).order_by(BookingModel.start_time)
            result = await session.execute(stmt)
            return [self._model_to_entity(model) for model in result.scalars().all()]

    async def has_customer_booked_vendor(self, customer_id: str, vendor_id: str) -> bool:
        """Check if the customer has any earlier booking with the vendor."""
        async with self._database.get_session() as session:
            stmt = select(func.count(BookingModel.id)).where(
                and_(
                    BookingModel.customer_id == customer_id,
                    BookingModel.vendor_id == vendor_id,
                )
            )
            result = await session.execute(stmt)
            return (result.scalar() or 0) > 0

    async def search(self, query: BookingQuery) -> BookingPage:
        """List bookings matching the query, newest first."""
        conditions = []
        if query.customer_id is not None:
            conditions.append(BookingModel.customer_id == query.customer_id)
        if query.vendor_id is not None:
            conditions.append(BookingModel.vendor_id == query.vendor_id)
        if query.status is not None:
            conditions.append(BookingModel.status == query.status.value)
        if query.date_from is not None:
            conditions.append(BookingModel.service_date >= query.date_from)
        if query.date_to is not None:
            conditions.append(BookingModel.service_date <= query.date_to)

        async with self._database.get_session() as session:
            count_stmt = select(func.count(BookingModel.id)).where(*conditions)
            total = (await session.execute(count_stmt)).scalar() or 0

            stmt = (
                select(BookingModel)
                .where(*conditions)
                .order_by(BookingModel.created_at.desc())
                .offset(query.offset)
                .limit(query.limit)
            )
            result = await session.execute(stmt)
            items = [self._model_to_entity(model) for model in result.scalars().all()]

        return BookingPage(items=items, total=total)

    async def _lock_vendor_day(self, session: AsyncSession, vendor_id: str, service_date: date) -> None:
        if self._database.dialect_name == "postgresql":
            await session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"{vendor_id}:{service_date.isoformat()}"}
            )

    async def _overlap_exists(self, session: AsyncSession, booking: Booking) -> bool:
        stmt = select(func.count(BookingModel.id)).where(
            and_(
                BookingModel.vendor_id == booking.vendor_id,
                BookingModel.service_date == booking.service_date,
                BookingModel.status.in_(ACTIVE_STATUS_VALUES),
                BookingModel.id != booking.id,
                BookingModel.start_time < booking.time_slot.end_time,
                BookingModel.end_time > booking.time_slot.start_time,
            )
        )
        result = await session.execute(stmt)
        return (result.scalar() or 0) > 0

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _entity_to_model(self, booking: Booking) -> BookingModel:
        """Convert domain entity to database model."""
        model = BookingModel(
            id=booking.id,
            customer_id=booking.customer_id,
            vendor_id=booking.vendor_id,
            service_date=booking.service_date,
            start_time=booking.time_slot.start_time,
            end_time=booking.time_slot.end_time,
            status=booking.status.value,
            line_items=[self._line_item_to_dict(item) for item in booking.line_items],
            status_history=[self._history_to_dict(entry) for entry in booking.status_history],
            cancellation=self._cancellation_to_dict(booking.cancellation) if booking.cancellation else None,
            subtotal_cents=to_minor_units(booking.pricing.subtotal),
            discount_cents=to_minor_units(booking.pricing.discount),
            tax_cents=to_minor_units(booking.pricing.tax),
            service_fee_cents=to_minor_units(booking.pricing.service_fee),
            total_cents=to_minor_units(booking.pricing.total),
            currency=booking.pricing.currency,
            special_requests=booking.special_requests,
            verification_code=booking.verification_code,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )
        self._apply_payment(model, booking.payment)
        return model

    @staticmethod
    def _apply_payment(model: BookingModel, payment: PaymentInfo) -> None:
        model.payment_method = payment.method.value
        model.payment_status = payment.status.value
        model.payment_reference = payment.reference
        model.paid_cents = to_minor_units(payment.paid_amount)
        model.refunded_cents = to_minor_units(payment.refunded_amount)

    def _model_to_entity(self, model: BookingModel) -> Booking:
        """Convert database model to domain entity."""
        return Booking(
            id=model.id,
            customer_id=model.customer_id,
            vendor_id=model.vendor_id,
            line_items=tuple(self._line_item_from_dict(item) for item in model.line_items),
            service_date=model.service_date,
            time_slot=TimeSlot(start_time=model.start_time, end_time=model.end_time),
            pricing=PricingBreakdown(
                subtotal=from_minor_units(model.subtotal_cents),
                discount=from_minor_units(model.discount_cents),
                tax=from_minor_units(model.tax_cents),
                service_fee=from_minor_units(model.service_fee_cents),
                total=from_minor_units(model.total_cents),
                currency=model.currency,
            ),
            payment=PaymentInfo(
                method=PaymentMethod(model.payment_method),
                status=PaymentStatus(model.payment_status),
                reference=model.payment_reference,
                paid_amount=from_minor_units(model.paid_cents),
                refunded_amount=from_minor_units(model.refunded_cents),
            ),
            status=BookingStatus(model.status),
            cancellation=self._cancellation_from_dict(model.cancellation) if model.cancellation else None,
            status_history=tuple(self._history_from_dict(entry) for entry in model.status_history),
            special_requests=model.special_requests or "",
            verification_code=model.verification_code or "",
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _line_item_to_dict(item: LineItem) -> Dict[str, Any]:
        return {
            "service_id": item.service_id,
            "name": item.name,
            "unit_price": str(item.unit_price),
            "quantity": item.quantity,
            "duration_minutes": item.duration_minutes,
        }

    @staticmethod
    def _line_item_from_dict(data: Dict[str, Any]) -> LineItem:
        return LineItem(
            service_id=data["service_id"],
            name=data["name"],
            unit_price=Decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            duration_minutes=int(data["duration_minutes"]),
        )

    @staticmethod
    def _history_to_dict(entry: StatusHistoryEntry) -> Dict[str, Any]:
        return {
            "status": entry.status.value,
            "changed_by": entry.changed_by,
            "changed_at": entry.changed_at.isoformat(),
            "notes": entry.notes,
        }

    @staticmethod
    def _history_from_dict(data: Dict[str, Any]) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            status=BookingStatus(data["status"]),
            changed_by=data["changed_by"],
            changed_at=datetime.fromisoformat(data["changed_at"]),
            notes=data.get("notes", ""),
        )

    @staticmethod
    def _cancellation_to_dict(record: CancellationRecord) -> Dict[str, Any]:
        return {
            "cancelled_by": record.cancelled_by.value,
            "cancelled_at": record.cancelled_at.isoformat(),
            "reason": record.reason,
            "fee_charged": str(record.fee_charged),
            "refund_amount": str(record.refund_amount),
        }

    @staticmethod
    def _cancellation_from_dict(data: Dict[str, Any]) -> CancellationRecord:
        return CancellationRecord(
            cancelled_by=ActorRole(data["cancelled_by"]),
            cancelled_at=datetime.fromisoformat(data["cancelled_at"]),
            reason=data.get("reason", ""),
            fee_charged=Decimal(data["fee_charged"]),
            refund_amount=Decimal(data["refund_amount"]),
        )


class SQLAlchemyVendorCatalog(VendorCatalog):
    """SQLAlchemy implementation of the vendor catalog read model."""

    def __init__(self, database: DatabaseManager):
        self._database = database
        self._logger = get_logger(__name__)

    async def get_availability(self, vendor_id: str) -> Optional[VendorAvailability]:
        """Snapshot of a vendor's hours, services and booking policy."""
        async with self._database.get_session() as session:
            model = await session.get(VendorModel, vendor_id)
            return self._model_to_entity(model) if model else None

    async def save(self, availability: VendorAvailability) -> VendorAvailability:
        """Insert or replace a vendor snapshot."""
        log_database_operation(self._logger, "UPSERT", "VendorModel", vendor_id=availability.vendor_id)
        async with self._database.get_session() as session:
            model = await session.get(VendorModel, availability.vendor_id)
            if model is None:
                model = VendorModel(vendor_id=availability.vendor_id)
                session.add(model)
            model.operating_hours = {
                day.name.lower(): {
                    "open": hours.open.strftime("%H:%M"),
                    "close": hours.close.strftime("%H:%M"),
                    "is_open": hours.is_open,
                }
                for day, hours in availability.operating_hours.items()
            }
            model.services = [
                {
                    "id": service.id,
                    "name": service.name,
                    "price": str(service.price),
                    "duration_minutes": service.duration_minutes,
                    "active": service.active,
                }
                for service in availability.services
            ]
            model.auto_confirm_bookings = availability.auto_confirm_bookings
            model.is_active = availability.is_active
        return availability

    @staticmethod
    def _model_to_entity(model: VendorModel) -> VendorAvailability:
        """Convert database model to the availability read model."""
        hours = {
            Weekday[day.upper()]: OperatingHours(
                open=time.fromisoformat(window["open"]),
                close=time.fromisoformat(window["close"]),
                is_open=window.get("is_open", True),
            )
            for day, window in (model.operating_hours or {}).items()
        }
        services = tuple(
            VendorService(
                id=entry["id"],
                name=entry["name"],
                price=Decimal(str(entry["price"])),
                duration_minutes=int(entry["duration_minutes"]),
                active=entry.get("active", True),
            )
            for entry in (model.services or [])
        )
        return VendorAvailability(
            vendor_id=model.vendor_id,
            operating_hours=hours,
            services=services,
            auto_confirm_bookings=model.auto_confirm_bookings,
            is_active=model.is_active,
        )
