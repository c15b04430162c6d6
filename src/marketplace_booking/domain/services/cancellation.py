"""Time-sensitive cancellation fees."""

from datetime import datetime, timedelta
from decimal import Decimal

from ..entities.booking import Booking
from ..value_objects.money import ZERO, percent_of, round_money

FREE_CANCELLATION_NOTICE = timedelta(hours=24)
SHORT_NOTICE = timedelta(hours=2)
SHORT_NOTICE_FEE_RATE = Decimal("0.25")
LATE_FEE_RATE = Decimal("0.50")


class CancellationPolicy:
    """Fee owed on cancellation, by notice given before the service starts.

    * 24h or more: free
    * 2h up to 24h: 25% of the booking total
    * under 2h, including after the slot has passed: 50%
    """

    def notice_given(self, booking: Booking, now: datetime) -> timedelta:
        return booking.service_starts_at - now

    def fee_for(self, booking: Booking, now: datetime) -> Decimal:
        """Cancellation fee for ``booking`` if cancelled at ``now``."""
        notice = self.notice_given(booking, now)
        total = booking.pricing.total

        if notice >= FREE_CANCELLATION_NOTICE:
            return ZERO
        if notice >= SHORT_NOTICE:
            return percent_of(total, SHORT_NOTICE_FEE_RATE)
        return percent_of(total, LATE_FEE_RATE)

    def refund_for(self, booking: Booking, fee: Decimal) -> Decimal:
        """Amount to return to a paying customer once the fee is retained."""
        if not booking.payment.is_paid:
            return ZERO
        return max(round_money(booking.pricing.total - fee), ZERO)
