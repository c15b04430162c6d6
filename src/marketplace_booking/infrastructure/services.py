"""Dependency injection and service factory."""

from typing import Optional

from src.marketplace_booking.application.ports.clock import Clock, SystemClock
from src.marketplace_booking.application.ports.gateways import NotificationPort, PaymentPort
from src.marketplace_booking.application.ports.repositories import BookingRepository, VendorCatalog
from src.marketplace_booking.application.services.booking_engine import BookingEngine
from src.marketplace_booking.domain.services.pricing import PricingEngine
from src.marketplace_booking.infrastructure.adapters.notifications import LoggingNotificationService
from src.marketplace_booking.infrastructure.adapters.payments import InMemoryPaymentGateway
from src.marketplace_booking.infrastructure.database.connection import DatabaseManager
from src.marketplace_booking.infrastructure.demo_data import demo_vendor
from src.marketplace_booking.infrastructure.logging import get_logger
from src.marketplace_booking.infrastructure.repositories.memory_repositories import (
    InMemoryBookingRepository,
    InMemoryVendorCatalog,
)
from src.marketplace_booking.infrastructure.repositories.sql_repositories import (
    SQLAlchemyBookingRepository,
    SQLAlchemyVendorCatalog,
)
from src.marketplace_booking.presentation.api.config import Settings, get_settings

logger = get_logger(__name__)


class ServiceFactory:
    """Builds the booking engine with the configured adapters.

    The engine is shared across requests; it holds no per-request state and
    the repositories provide the synchronization.
    """

    def __init__(
        self,
        settings: Settings,
        payment_port: Optional[PaymentPort] = None,
        notification_port: Optional[NotificationPort] = None,
        clock: Optional[Clock] = None,
    ):
        self._settings = settings
        self._payment_port = payment_port or InMemoryPaymentGateway()
        self._notification_port = notification_port or LoggingNotificationService()
        self._clock = clock or SystemClock(settings.marketplace_timezone)
        self.database_manager: Optional[DatabaseManager] = None
        self.booking_repository: BookingRepository
        self.vendor_catalog: VendorCatalog

        if settings.storage_backend == "sql":
            self.database_manager = DatabaseManager(settings.database_url, echo=settings.database_echo)
            self.booking_repository = SQLAlchemyBookingRepository(self.database_manager)
            self.vendor_catalog = SQLAlchemyVendorCatalog(self.database_manager)
        else:
            self.booking_repository = InMemoryBookingRepository()
            self.vendor_catalog = InMemoryVendorCatalog(
                [demo_vendor()] if settings.seed_demo_vendor else None
            )

        self._engine = BookingEngine(
            booking_repository=self.booking_repository,
            vendor_catalog=self.vendor_catalog,
            payment_port=self._payment_port,
            notification_port=self._notification_port,
            clock=self._clock,
            pricing_engine=PricingEngine(settings.pricing_policy()),
            call_timeout=settings.external_call_timeout_seconds,
        )

    async def initialize(self) -> None:
        """Connect to the database when the SQL backend is configured."""
        if self.database_manager and not self.database_manager.is_connected:
            await self.database_manager.connect()
            logger.info("Database connected", extra={"backend": self._settings.storage_backend})

    async def shutdown(self) -> None:
        """Release database connections."""
        if self.database_manager and self.database_manager.is_connected:
            await self.database_manager.disconnect()

    @property
    def booking_engine(self) -> BookingEngine:
        return self._engine


# Global service factory instance
_service_factory: Optional[ServiceFactory] = None


def get_service_factory() -> ServiceFactory:
    """Get the global service factory instance."""
    global _service_factory

    if _service_factory is None:
        _service_factory = ServiceFactory(get_settings())

    return _service_factory


def get_booking_engine() -> BookingEngine:
    """FastAPI dependency returning the shared booking engine."""
    return get_service_factory().booking_engine


async def initialize_services() -> None:
    """Initialize application services."""
    await get_service_factory().initialize()


async def shutdown_services() -> None:
    """Shutdown application services."""
    await get_service_factory().shutdown()
