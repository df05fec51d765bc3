from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


_TICK = timedelta(microseconds=1)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Default wall-clock implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MonotonicClock:
    """Strictly increasing, even if the wall clock stalls or steps back.

    Persisted timestamps must follow assignment order, ties included, so a
    repeated reading is nudged forward by one microsecond.
    """

    def __init__(self, inner: Clock | None = None) -> None:
        self._inner = inner or SystemClock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        ts = self._inner.now()
        if self._last is not None and ts <= self._last:
            ts = self._last + _TICK
        self._last = ts
        return ts
