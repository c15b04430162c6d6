"""Clock port."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo


class Clock(ABC):
    """Supplies the current wall-clock time of the marketplace."""

    @abstractmethod
    def now(self) -> datetime:
        """Naive datetime in the marketplace timezone."""
        raise NotImplementedError


class SystemClock(Clock):
    """Reads the system clock and converts to the marketplace timezone.

    Service dates and slots are vendor wall-clock values, so ``now`` is
    returned naive in the same zone to keep comparisons direct.
    """

    def __init__(self, timezone: str = "Africa/Johannesburg"):
        self._zone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self._zone).replace(tzinfo=None)


class FixedClock(Clock):
    """Manually driven clock."""

    def __init__(self, current: datetime):
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = current

    def advance(self, **kwargs) -> None:
        self._current += timedelta(**kwargs)
