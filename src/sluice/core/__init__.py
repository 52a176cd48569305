"""Core infrastructure: Configuration, Logging, Clock, Durations."""

from sluice.core.clock import (
    Clock,
    MockClock,
    SystemClock,
)
from sluice.core.config import (
    AggregationSettings,
    DatabaseSettings,
    PurgeSettings,
    SluiceSettings,
    load_settings,
)
from sluice.core.durations import (
    format_duration_ms,
    parse_duration_ms,
)
from sluice.core.logging import (
    configure_logging,
    get_logger,
)

__all__ = [
    "AggregationSettings",
    "Clock",
    "DatabaseSettings",
    "MockClock",
    "PurgeSettings",
    "SluiceSettings",
    "SystemClock",
    "configure_logging",
    "format_duration_ms",
    "get_logger",
    "load_settings",
    "parse_duration_ms",
]
