"""Utilities for constraining operations to specific time windows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Protocol

from payrecon.domain.errors import InvalidRequestError


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise InvalidRequestError("Time window values must include timezone information")
    return value.astimezone(UTC)


@dataclass(frozen=True)
class TimeWindow:
    """Describe the desired ``paid_at`` bounds for a run."""

    start: datetime | None = None
    end: datetime | None = None
    lookback: timedelta | None = None

    def resolve(self, *, clock: Clock = _utcnow) -> tuple[datetime | None, datetime | None]:
        """Resolve the window into concrete UTC timestamps."""

        resolved_end = _ensure_aware(self.end)
        resolved_start = _ensure_aware(self.start)

        if self.lookback is not None:
            if self.lookback < timedelta(0):
                raise InvalidRequestError("Lookback duration must be non-negative")
            anchor = resolved_end or clock()
            if anchor.tzinfo is None:
                anchor = anchor.replace(tzinfo=UTC)
            anchor = anchor.astimezone(UTC)
            start_from_lookback = anchor - self.lookback
            if resolved_start is None:
                resolved_start = start_from_lookback
            else:
                resolved_start = max(resolved_start, start_from_lookback)
            if resolved_end is None:
                resolved_end = anchor

        if resolved_start and resolved_end and resolved_start > resolved_end:
            raise InvalidRequestError("Time window start must be before end")

        return resolved_start, resolved_end


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days, interpreted in UTC."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidRequestError("from_date must not be after to_date")

    def bounds(self) -> tuple[datetime, datetime]:
        """Return ``[start 00:00:00, end 23:59:59.999999]`` as aware datetimes."""

        return (
            datetime.combine(self.start, time.min, tzinfo=UTC),
            datetime.combine(self.end, time.max, tzinfo=UTC),
        )


__all__ = ["Clock", "DateRange", "TimeWindow"]
