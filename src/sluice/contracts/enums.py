"""Granularities, attribute types and operators used across subsystem boundaries.

Granularity values are embedded in aggregation table names, so they are
(str, Enum) and must never be renamed.
"""

from enum import Enum

_SECOND_MS = 1000
_MINUTE_MS = 60 * _SECOND_MS
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


class Granularity(str, Enum):
    """Time bucket size at which aggregation results are materialized.

    Members are declared shortest-first. Months are 30 days and years are
    365 days, matching the duration arithmetic of the aggregation engine.
    """

    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"

    @property
    def duration_ms(self) -> int:
        """Length of one bucket of this granularity in milliseconds."""
        return _UNIT_MS[self]

    @classmethod
    def parse(cls, name: str) -> "Granularity":
        """Normalize a granularity name or alias ("sec", "min", "d", ...).

        Raises:
            ValueError: If the name is not a known granularity or alias
        """
        key = name.strip().lower()
        if key not in _ALIASES:
            raise ValueError(
                f"Unknown granularity '{name}'. "
                f"Expected one of: {', '.join(g.value for g in cls)}"
            )
        return _ALIASES[key]

    @classmethod
    def ordered(cls) -> list["Granularity"]:
        """All granularities, shortest duration first."""
        return sorted(cls, key=lambda g: g.duration_ms)


_UNIT_MS: dict[Granularity, int] = {
    Granularity.SECONDS: _SECOND_MS,
    Granularity.MINUTES: _MINUTE_MS,
    Granularity.HOURS: _HOUR_MS,
    Granularity.DAYS: _DAY_MS,
    Granularity.MONTHS: 30 * _DAY_MS,
    Granularity.YEARS: 365 * _DAY_MS,
}

_ALIASES: dict[str, Granularity] = {
    **{alias: Granularity.SECONDS for alias in ("s", "sec", "secs", "second", "seconds")},
    **{alias: Granularity.MINUTES for alias in ("min", "mins", "minute", "minutes")},
    **{alias: Granularity.HOURS for alias in ("h", "hr", "hrs", "hour", "hours")},
    **{alias: Granularity.DAYS for alias in ("d", "day", "days")},
    **{alias: Granularity.MONTHS for alias in ("mo", "month", "months")},
    **{alias: Granularity.YEARS for alias in ("y", "yr", "yrs", "year", "years")},
}


class AttributeType(str, Enum):
    """Declared type of an aggregation table attribute.

    Uses (str, Enum) because the values are read straight from YAML.
    """

    STRING = "string"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOL = "bool"


class CompareOperator(str, Enum):
    """Comparison operators a table may be asked to compile."""

    LESS_THAN = "<"
    LESS_THAN_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_EQUAL = ">="
    EQUAL = "=="
    NOT_EQUAL = "!="
