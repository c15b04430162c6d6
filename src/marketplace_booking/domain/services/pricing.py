"""Booking price computation.

Discounts are each computed off the original subtotal and then summed,
never compounded. The sum is capped at the subtotal. Tax and the platform
fee are charged on the discounted subtotal.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Sequence, Tuple

from ..entities.booking import LineItem, PricingBreakdown
from ..entities.vendor import VendorAvailability
from ..exceptions import InvalidLineItem, ValidationError
from ..value_objects.money import ZERO, percent_of, round_money, to_decimal


@dataclass(frozen=True)
class RequestedService:
    """A service reference and quantity as submitted by the customer."""

    service_id: str
    quantity: int = 1


@dataclass(frozen=True)
class PricingPolicy:
    """Rates and thresholds injected from configuration."""

    currency: str = "ZAR"
    tax_rate: Decimal = Decimal("0.15")
    platform_fee_rate: Decimal = Decimal("0.05")
    first_time_discount_rate: Decimal = Decimal("0.20")
    first_time_discount_cap: Decimal = Decimal("100.00")
    early_bird_discount_rate: Decimal = Decimal("0.10")
    early_bird_min_days: int = 7


@dataclass(frozen=True)
class Quote:
    """Line items frozen from the catalog and the resulting breakdown."""

    line_items: Tuple[LineItem, ...]
    pricing: PricingBreakdown


class PricingEngine:
    """Computes subtotal, discounts, tax, platform fee and total."""

    def __init__(self, policy: PricingPolicy = PricingPolicy()):
        self._policy = policy

    @property
    def policy(self) -> PricingPolicy:
        return self._policy

    def snapshot_line_items(
        self,
        availability: VendorAvailability,
        requested: Sequence[RequestedService],
    ) -> Tuple[LineItem, ...]:
        """Freeze catalog name, price and duration for each requested service."""
        if not requested:
            raise ValidationError("At least one service is required", {"services": "must not be empty"})

        items: List[LineItem] = []
        for position, request in enumerate(requested):
            if request.quantity < 1:
                raise ValidationError(
                    "Quantity must be at least 1",
                    {f"services[{position}].quantity": "must be >= 1"}
                )
            service = availability.find_service(request.service_id)
            if service is None:
                raise InvalidLineItem(
                    f"Unknown service {request.service_id} for vendor {availability.vendor_id}",
                    {"service_id": request.service_id}
                )
            if not service.active:
                raise InvalidLineItem(
                    f"Service {request.service_id} is not currently offered",
                    {"service_id": request.service_id}
                )
            if service.duration_minutes <= 0:
                raise ValidationError(
                    f"Service {service.id} has no duration",
                    {f"services[{position}]": "service duration must be positive"}
                )
            items.append(LineItem(
                service_id=service.id,
                name=service.name,
                unit_price=round_money(service.price),
                quantity=request.quantity,
                duration_minutes=service.duration_minutes,
            ))
        return tuple(items)

    def price(
        self,
        availability: VendorAvailability,
        requested: Sequence[RequestedService],
        service_date: date,
        is_first_time_customer: bool,
        now: datetime,
    ) -> Quote:
        """Price a request against the vendor's current catalog snapshot."""
        line_items = self.snapshot_line_items(availability, requested)
        return Quote(
            line_items=line_items,
            pricing=self.price_line_items(line_items, service_date, is_first_time_customer, now),
        )

    def price_line_items(
        self,
        line_items: Sequence[LineItem],
        service_date: date,
        is_first_time_customer: bool,
        now: datetime,
    ) -> PricingBreakdown:
        """Compute the breakdown for already-frozen line items."""
        policy = self._policy
        subtotal = round_money(sum((item.line_total for item in line_items), ZERO))

        discount = self.discount_for(subtotal, service_date, is_first_time_customer, now)
        discounted = subtotal - discount

        tax = percent_of(discounted, policy.tax_rate)
        service_fee = percent_of(discounted, policy.platform_fee_rate)

        return PricingBreakdown(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            service_fee=service_fee,
            total=round_money(discounted + tax + service_fee),
            currency=policy.currency,
        )

    def discount_for(
        self,
        subtotal: Decimal,
        service_date: date,
        is_first_time_customer: bool,
        now: datetime,
    ) -> Decimal:
        policy = self._policy
        discount = ZERO

        if is_first_time_customer:
            discount += min(
                percent_of(subtotal, policy.first_time_discount_rate),
                round_money(policy.first_time_discount_cap),
            )

        # Whole calendar days between today and the service date.
        days_in_advance = (service_date - now.date()).days
        if days_in_advance >= policy.early_bird_min_days:
            discount += percent_of(subtotal, policy.early_bird_discount_rate)

        return min(round_money(discount), to_decimal(subtotal))
