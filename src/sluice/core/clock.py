"""Clock abstraction for testable cutoff computation.

Purge cutoffs are wall-clock epoch milliseconds, so production code uses
SystemClock. Tests inject MockClock to pin "now" to a known instant.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock time for purge ticks."""

    def now_ms(self) -> int:
        """Return milliseconds since the Unix epoch."""
        ...


class SystemClock:
    """Production clock backed by time.time()."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock(start_ms=1_700_000_000_000)
        task = IncrementalPurgeTask.from_definition(definition, tables, clock=clock)
        task.run()  # cutoffs computed from 1_700_000_000_000
        clock.advance(60_000)
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._current = start_ms

    def now_ms(self) -> int:
        return self._current

    def advance(self, delta_ms: int) -> None:
        """Move time forward.

        Raises:
            ValueError: If delta_ms is negative
        """
        if delta_ms < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {delta_ms}")
        self._current += delta_ms

    def set(self, value_ms: int) -> None:
        """Jump to an absolute time (may go backwards)."""
        self._current = value_ms
