"""Tests for clock implementations."""

import time

import pytest


class TestSystemClock:
    def test_epoch_milliseconds(self) -> None:
        from sluice.core.clock import SystemClock

        before = int(time.time() * 1000)
        now = SystemClock().now_ms()
        after = int(time.time() * 1000)
        assert before <= now <= after


class TestMockClock:
    """MockClock for deterministic cutoffs."""

    def test_starts_at_given_time(self) -> None:
        from sluice.core.clock import MockClock

        assert MockClock(start_ms=42).now_ms() == 42
        assert MockClock().now_ms() == 0

    def test_advance(self) -> None:
        from sluice.core.clock import MockClock

        clock = MockClock(1_000)
        clock.advance(500)
        assert clock.now_ms() == 1_500

    def test_advance_negative_raises(self) -> None:
        from sluice.core.clock import MockClock

        with pytest.raises(ValueError, match="negative"):
            MockClock().advance(-1)

    def test_set_can_go_backwards(self) -> None:
        from sluice.core.clock import MockClock

        clock = MockClock(10_000)
        clock.set(5_000)
        assert clock.now_ms() == 5_000
