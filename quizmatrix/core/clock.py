"""Authoritative clock sources used for every timing decision."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import math
from threading import Lock
from typing import Protocol


class ClockSource(Protocol):
    """Supplies the single server-side "now" reference."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC that never goes backwards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._last: datetime | None = None

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


class ManualClock:
    """Clock that only moves when told to. Used by tests and simulations."""

    def __init__(self, start: datetime | None = None) -> None:
        self._lock = Lock()
        self._current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, seconds: float) -> datetime:
        if seconds < 0:
            raise ValueError("A manual clock cannot move backwards.")
        with self._lock:
            self._current = self._current + timedelta(seconds=seconds)
            return self._current

    def set(self, value: datetime) -> None:
        with self._lock:
            if value < self._current:
                raise ValueError("A manual clock cannot move backwards.")
            self._current = value


def elapsed_seconds(start: datetime | None, now: datetime) -> float:
    """Seconds between ``start`` and ``now``; zero when not started or skewed."""
    if start is None:
        return 0.0
    return max(0.0, (now - start).total_seconds())


def remaining_seconds(start: datetime | None, budget_seconds: int, now: datetime) -> int:
    """Whole seconds left on a countdown of ``budget_seconds`` started at ``start``."""
    if start is None:
        return budget_seconds
    elapsed = math.floor(elapsed_seconds(start, now))
    return max(0, budget_seconds - elapsed)
