"""Injectable clocks (real time for services, manual time for tests)."""

from datetime import datetime, timedelta, timezone
from typing import Optional


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """
    Clock that only moves when told to.

    Used to step scheduled jobs, cache expiry and recency decay
    deterministically.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 0.0, **kwargs) -> datetime:
        """Move time forward by `seconds` plus any timedelta kwargs (days=, hours=...)"""
        self._now = self._now + timedelta(seconds=seconds, **kwargs)
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment
