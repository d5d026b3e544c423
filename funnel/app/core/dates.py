"""
Date handling helpers

Timestamps are stored as naive UTC. Anything coming in with a timezone is
converted to UTC first.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from .exceptions import ValidationError


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_datetime(raw: str, field: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime string supplied by a caller"""
    text = raw.strip()
    try:
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, time.max if end_of_day else time.min)
        # fromisoformat does not accept a trailing Z before Python 3.11
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        raise ValidationError(f"Invalid date format for {field}: {raw}")


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window over naive UTC timestamps"""

    start: datetime
    end: datetime

    @classmethod
    def parse(
        cls,
        start: Optional[str] = None,
        end: Optional[str] = None,
        default_days: int = 30,
    ) -> "DateRange":
        now = datetime.utcnow()
        end_dt = parse_datetime(end, "end_date", end_of_day=True) if end else now
        start_dt = parse_datetime(start, "start_date") if start else end_dt - timedelta(days=default_days)

        if start_dt > end_dt:
            raise ValidationError("start_date must be before end_date")

        return cls(start=start_dt, end=end_dt)

    @classmethod
    def optional(cls, start: Optional[str] = None, end: Optional[str] = None) -> Optional["DateRange"]:
        """Parse a range only when the caller supplied one"""
        if not start and not end:
            return None
        start_dt = parse_datetime(start, "start_date") if start else datetime.min
        end_dt = parse_datetime(end, "end_date", end_of_day=True) if end else datetime.utcnow()
        if start_dt > end_dt:
            raise ValidationError("start_date must be before end_date")
        return cls(start=start_dt, end=end_dt)

    @classmethod
    def ahead(cls, start: Optional[str] = None, end: Optional[str] = None, default_days: int = 7) -> "DateRange":
        """Window starting now (or at `start`) and running forward"""
        start_dt = parse_datetime(start, "start_date") if start else datetime.utcnow()
        end_dt = parse_datetime(end, "end_date", end_of_day=True) if end else start_dt + timedelta(days=default_days)
        if start_dt > end_dt:
            raise ValidationError("start_date must be before end_date")
        return cls(start=start_dt, end=end_dt)

    def contains(self, value: Optional[datetime]) -> bool:
        return value is not None and self.start <= value <= self.end

    def as_dict(self) -> dict:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}
