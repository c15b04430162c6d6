"""Role-gated booking lifecycle."""

from dataclasses import replace
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from ..entities.booking import (
    ActorRole,
    Booking,
    BookingStatus,
    CancellationRecord,
    StatusHistoryEntry,
)
from ..exceptions import InvalidTransition
from .cancellation import CancellationPolicy

S = BookingStatus

# Who may move a booking from X to Y. Anything absent is forbidden.
TRANSITIONS: Dict[ActorRole, Dict[BookingStatus, FrozenSet[BookingStatus]]] = {
    ActorRole.CUSTOMER: {
        S.PENDING_APPROVAL: frozenset({S.CANCELLED}),
        S.CONFIRMED: frozenset({S.CANCELLED}),
    },
    ActorRole.VENDOR: {
        S.PENDING_APPROVAL: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
        S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    },
    ActorRole.ADMIN: {
        S.PENDING_APPROVAL: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
        S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
        # Overrides: the only edges out of a terminal status.
        S.COMPLETED: frozenset({S.CANCELLED}),
        S.CANCELLED: frozenset({S.CONFIRMED}),
    },
}


class BookingStateMachine:
    """Validates and applies lifecycle transitions."""

    def __init__(self, cancellation_policy: Optional[CancellationPolicy] = None):
        self._cancellation_policy = cancellation_policy or CancellationPolicy()

    @staticmethod
    def allowed_targets(current: BookingStatus, role: ActorRole) -> FrozenSet[BookingStatus]:
        return TRANSITIONS.get(role, {}).get(current, frozenset())

    def can_transition(self, current: BookingStatus, target: BookingStatus, role: ActorRole) -> bool:
        return target in self.allowed_targets(current, role)

    def transition(
        self,
        booking: Booking,
        target: BookingStatus,
        role: ActorRole,
        changed_by: str,
        now: datetime,
        notes: str = "",
    ) -> Booking:
        """Return a new snapshot of ``booking`` moved to ``target``.

        Raises:
            InvalidTransition: ``target`` is not reachable for ``role``.
        """
        if not self.can_transition(booking.status, target, role):
            raise InvalidTransition(
                f"Cannot change status from {booking.status.value} to {target.value} as {role.value}",
                {
                    "from": booking.status.value,
                    "to": target.value,
                    "role": role.value,
                    "allowed": sorted(s.value for s in self.allowed_targets(booking.status, role)),
                }
            )

        cancellation = None
        if target == BookingStatus.CANCELLED:
            fee = self._cancellation_policy.fee_for(booking, now)
            cancellation = CancellationRecord(
                cancelled_by=role,
                cancelled_at=now,
                reason=notes,
                fee_charged=fee,
                refund_amount=self._cancellation_policy.refund_for(booking, fee),
            )

        entry = StatusHistoryEntry(status=target, changed_by=changed_by, changed_at=now, notes=notes)
        return replace(
            booking,
            status=target,
            cancellation=cancellation,
            status_history=booking.status_history + (entry,),
            updated_at=now,
        )
