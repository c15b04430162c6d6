"""Time slot value object for service reservations."""

from dataclasses import dataclass
from datetime import date, datetime, time

from ..exceptions import ValidationError


@dataclass(frozen=True)
class TimeSlot:
    """Immutable same-day wall-clock interval ``[start_time, end_time)``."""

    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        """Validate time slot data."""
        if self.start_time >= self.end_time:
            raise ValidationError(
                "Start time must be before end time",
                {"time_slot": "start_time must be before end_time"}
            )

    @classmethod
    def parse(cls, start: str, end: str) -> "TimeSlot":
        """Build a slot from ``HH:MM`` strings."""
        try:
            start_time = time.fromisoformat(start)
            end_time = time.fromisoformat(end)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid time format: {exc}",
                {"time_slot": "times must use HH:MM format"}
            ) from exc
        return cls(start_time=start_time, end_time=end_time)

    @property
    def duration_minutes(self) -> int:
        """Length of the slot in whole minutes."""
        anchor = date(2000, 1, 1)
        delta = datetime.combine(anchor, self.end_time) - datetime.combine(anchor, self.start_time)
        return int(delta.total_seconds() // 60)

    def overlaps(self, other: "TimeSlot") -> bool:
        """Half-open overlap test; touching slots do not overlap."""
        return self.start_time < other.end_time and self.end_time > other.start_time

    def within(self, opens: time, closes: time) -> bool:
        """Check whether the slot fits inside ``[opens, closes)``."""
        return opens <= self.start_time and self.end_time <= closes

    def starts_on(self, service_date: date) -> datetime:
        """Combine the slot start with a calendar date."""
        return datetime.combine(service_date, self.start_time)

    def format_time_range(self) -> str:
        """Get formatted time range string."""
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"

    def __str__(self) -> str:
        return self.format_time_range()
