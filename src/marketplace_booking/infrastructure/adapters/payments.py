"""Sandbox payment gateway for development and tests."""

from decimal import Decimal
from typing import Dict, List, Tuple
from uuid import UUID, uuid4

from src.marketplace_booking.application.ports.gateways import PaymentHandle, PaymentPort, RefundResult
from src.marketplace_booking.domain.entities.booking import PaymentMethod, PaymentStatus
from src.marketplace_booking.infrastructure.logging import get_logger


class InMemoryPaymentGateway(PaymentPort):
    """Accepts every charge and refunds up to the amount charged."""

    def __init__(self):
        self._charges: Dict[UUID, Decimal] = {}
        self._refunds: List[Tuple[UUID, Decimal]] = []
        self._logger = get_logger(__name__)

    async def create_charge(
        self,
        booking_id: UUID,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
    ) -> PaymentHandle:
        reference = f"sandbox-{uuid4().hex[:12]}"
        self._charges[booking_id] = self._charges.get(booking_id, Decimal("0")) + amount
        self._logger.info(
            "Sandbox charge accepted",
            extra={"booking_id": str(booking_id), "amount": str(amount),
                   "currency": currency, "method": method.value, "reference": reference}
        )
        return PaymentHandle(reference=reference, status=PaymentStatus.PAID)

    async def issue_refund(self, booking_id: UUID, amount: Decimal) -> RefundResult:
        refunded = sum((value for ref_id, value in self._refunds if ref_id == booking_id), Decimal("0"))
        charged = self._charges.get(booking_id)
        if charged is not None and refunded + amount > charged:
            return RefundResult(succeeded=False, amount=Decimal("0"), message="refund exceeds amount charged")

        self._refunds.append((booking_id, amount))
        return RefundResult(succeeded=True, amount=amount, reference=f"refund-{uuid4().hex[:12]}")

    @property
    def refunds(self) -> List[Tuple[UUID, Decimal]]:
        return list(self._refunds)
