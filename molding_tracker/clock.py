"""Time sources used by the lifecycle controller and the service facade."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock returning timezone-aware UTC timestamps."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to, for simulations and tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._current = start or datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, value: datetime) -> None:
        with self._lock:
            self._current = value

    def advance(self, *, minutes: float = 0, seconds: float = 0) -> datetime:
        with self._lock:
            self._current += timedelta(minutes=minutes, seconds=seconds)
            return self._current


__all__ = ["Clock", "SystemClock", "ManualClock"]
