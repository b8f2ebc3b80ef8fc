"""Injectable time sources."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from .utils import _ensure_utc


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Return the current instant as an aware UTC datetime."""
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a settable instant, used by tests and replays."""

    def __init__(self, instant: Optional[datetime] = None) -> None:
        self._instant = _ensure_utc(instant or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._instant

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._instant = _ensure_utc(instant)

    def advance(self, **delta: float) -> datetime:
        with self._lock:
            self._instant = self._instant + timedelta(**delta)
            return self._instant
