"""
Injectable time source.

The scheduler never calls ``datetime.now()``: due checks, weekend deferral
and every ``processed_at`` / ``created_at`` written to the generation log
read the Clock handed to the service.  Tests pin it to a known instant
(e.g. a Friday morning in New York) and move it explicitly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current instant, always timezone-aware UTC."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    A naive start time is taken to be UTC; an aware one is converted.
    """

    def __init__(self, start: datetime | None = None):
        self._now = _as_utc(start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    def now_utc(self) -> datetime:
        return self._now

    def set_time(self, instant: datetime) -> None:
        self._now = _as_utc(instant)

    def advance(self, seconds: float = 0, **delta: float) -> datetime:
        """Move forward by ``seconds`` plus any ``timedelta`` keyword parts; return the new time."""
        self._now += timedelta(seconds=seconds, **delta)
        return self._now


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
