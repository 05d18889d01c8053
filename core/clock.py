"""
Thetaline — Clock
Wall-clock access for cache expiry and run timestamps.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC time."""
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; moved only by set() or advance()."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = instant

    def advance(self, seconds: float = 0.0, days: float = 0.0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, days=days)
        return self._now
