# 📄 File: telehealth_core/shared/utils/clock.py
# 🧭 Purpose (Layman Explanation):
# A single place to ask "what time is it?" so tests can freeze time and billing dates stay predictable.
# 🧪 Purpose (Technical Summary):
# Clock abstraction returning timezone-aware UTC datetimes; SystemClock for production,
# FrozenClock for deterministic tests and replays.
# 🔗 Dependencies:
# datetime, abc
# 🔄 Connected Modules / Calls From:
# Lifecycle manager, quota tracker, orchestrator sweeps, in-memory store timestamps

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; aware values are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant that only moves when told to."""

    def __init__(self, instant: datetime):
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime):
        self._instant = ensure_utc(instant)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (days=, hours=, ...)."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant
