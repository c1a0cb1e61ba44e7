from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from quizmatrix.core.clock import ManualClock, SystemClock, elapsed_seconds, remaining_seconds

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_manual_clock_only_moves_forward():
    clock = ManualClock(START)
    assert clock.now() == START
    clock.advance(2.5)
    assert clock.now() == START + timedelta(seconds=2.5)
    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        clock.set(START)


def test_system_clock_is_utc_and_non_decreasing():
    clock = SystemClock()
    first = clock.now()
    second = clock.now()
    assert first.tzinfo is not None
    assert second >= first


def test_elapsed_seconds_never_negative():
    assert elapsed_seconds(None, START) == 0.0
    assert elapsed_seconds(START, START + timedelta(seconds=4)) == 4.0
    assert elapsed_seconds(START + timedelta(seconds=10), START) == 0.0


def test_remaining_seconds_counts_down_in_whole_seconds():
    assert remaining_seconds(START, 30, START) == 30
    assert remaining_seconds(START, 30, START + timedelta(seconds=4.7)) == 26
    assert remaining_seconds(START, 30, START + timedelta(seconds=45)) == 0
    assert remaining_seconds(None, 30, START) == 30
