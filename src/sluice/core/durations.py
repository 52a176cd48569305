"""Duration literal parsing.

Literals are an integer followed by a time unit, e.g. "30 sec", "1 min",
"7 d" or "5 years". Units are the granularity names and their aliases, so
a month is 30 days and a year is 365 days.
"""

import re

from sluice.contracts.enums import Granularity
from sluice.contracts.errors import DurationParseError

_DURATION_PATTERN = re.compile(r"^\s*(?P<value>[+-]?\d+)\s*(?P<unit>[A-Za-z]+)\s*$")


def parse_duration_ms(text: str) -> int:
    """Parse a duration literal into milliseconds.

    Args:
        text: Literal such as "15 min"

    Returns:
        Positive number of milliseconds

    Raises:
        DurationParseError: If the literal is malformed, uses an unknown
            unit, or is not strictly positive
    """
    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise DurationParseError(
            f"Cannot parse duration '{text}'. Expected '<number> <unit>', e.g. '15 min'"
        )

    value = int(match.group("value"))
    try:
        unit = Granularity.parse(match.group("unit"))
    except ValueError as e:
        raise DurationParseError(f"Cannot parse duration '{text}': {e}") from e

    if value <= 0:
        raise DurationParseError(f"Duration '{text}' must be positive")
    return value * unit.duration_ms


def format_duration_ms(duration_ms: int) -> str:
    """Render milliseconds using the largest unit that divides them exactly."""
    for unit in reversed(Granularity.ordered()):
        if duration_ms >= unit.duration_ms and duration_ms % unit.duration_ms == 0:
            count = duration_ms // unit.duration_ms
            name = unit.value if count != 1 else unit.value[:-1]
            return f"{count} {name}"
    return f"{duration_ms} ms"
