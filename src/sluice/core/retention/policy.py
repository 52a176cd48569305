"""Retention policy resolution for incremental aggregations.

Turns the granularities an aggregation maintains, plus its optional purge
block, into an immutable RetentionPolicy and PurgeConfig. Every validation
happens here, once, while the aggregation is being set up; a running purge
tick never re-validates configuration.
"""

from collections.abc import Iterable
from types import MappingProxyType
from typing import Final

from sluice.contracts.enums import Granularity
from sluice.contracts.errors import DurationParseError, PurgeConfigurationError
from sluice.contracts.retention import (
    RETAIN_ALL,
    PurgeConfig,
    RetentionPolicy,
    RetentionValue,
)
from sluice.core.config import PurgeSettings
from sluice.core.durations import parse_duration_ms

DEFAULT_PURGE_INTERVAL_MS: Final = 15 * Granularity.MINUTES.duration_ms

DEFAULT_RETENTION: Final[MappingProxyType[Granularity, RetentionValue]] = MappingProxyType(
    {
        Granularity.SECONDS: 30 * Granularity.SECONDS.duration_ms,
        Granularity.MINUTES: 24 * Granularity.HOURS.duration_ms,
        Granularity.HOURS: 30 * Granularity.DAYS.duration_ms,
        Granularity.DAYS: 5 * Granularity.YEARS.duration_ms,
        Granularity.MONTHS: RETAIN_ALL,
        Granularity.YEARS: RETAIN_ALL,
    }
)

_missing_defaults = set(Granularity) - set(DEFAULT_RETENTION)
if _missing_defaults:
    raise RuntimeError(
        f"No default retention for: {sorted(g.value for g in _missing_defaults)}"
    )

_RETAIN_ALL_LITERAL = "all"


def resolve_purge_policy(
    granularities: Iterable[Granularity],
    purge: PurgeSettings | None = None,
) -> tuple[RetentionPolicy, PurgeConfig]:
    """Resolve the effective retention policy and purge schedule.

    Args:
        granularities: Granularities the aggregation actually maintains
        purge: Optional purge block from the aggregation definition

    Returns:
        (retention policy, purge config)

    Raises:
        PurgeConfigurationError: If `enable` is not "true"/"false", a
            duration literal is invalid, or a retention override names a
            granularity the aggregation does not maintain
    """
    aggregated = list(granularities)
    periods: dict[Granularity, RetentionValue] = {
        granularity: DEFAULT_RETENTION[granularity] for granularity in aggregated
    }

    if purge is None:
        return RetentionPolicy(periods), PurgeConfig(
            enabled=True, interval_ms=DEFAULT_PURGE_INTERVAL_MS
        )

    enabled = _parse_enable(purge.enable)
    if not enabled:
        # Disabled purging is fully inert: overrides are neither applied nor checked
        return RetentionPolicy(periods), PurgeConfig(
            enabled=False, interval_ms=DEFAULT_PURGE_INTERVAL_MS
        )

    interval_ms = DEFAULT_PURGE_INTERVAL_MS
    if purge.interval is not None:
        interval_ms = _parse_duration(purge.interval, "interval")

    for name, value in purge.retention.items():
        granularity = _parse_granularity(name)
        if granularity not in periods:
            raise PurgeConfigurationError(
                f"{granularity.value} granularity cannot be purged since aggregation "
                f"has not been performed in {granularity.value} granularity"
            )
        if value.lower() == _RETAIN_ALL_LITERAL:
            periods[granularity] = RETAIN_ALL
        else:
            periods[granularity] = _parse_duration(value, f"retention.{name}")

    return RetentionPolicy(periods), PurgeConfig(enabled=True, interval_ms=interval_ms)


def _parse_enable(value: str | None) -> bool:
    if value is None:
        return True
    normalized = value.lower()
    if normalized not in ("true", "false"):
        raise PurgeConfigurationError(
            f"Undefined value for enable: {value}. Please use true or false"
        )
    return normalized == "true"


def _parse_duration(value: str, key: str) -> int:
    try:
        return parse_duration_ms(value)
    except DurationParseError as e:
        raise PurgeConfigurationError(f"Invalid purge {key}: {e}") from e


def _parse_granularity(name: str) -> Granularity:
    try:
        return Granularity.parse(name)
    except ValueError as e:
        raise PurgeConfigurationError(f"Invalid retention granularity: {e}") from e
