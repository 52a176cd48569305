"""Retention policy and purge result types."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final, Union

from sluice.contracts.enums import Granularity


class _RetainAll:
    """Sentinel retention value meaning "never purge this granularity"."""

    _instance: "_RetainAll | None" = None

    def __new__(cls) -> "_RetainAll":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "RETAIN_ALL"

    def __reduce__(self) -> str:
        return "RETAIN_ALL"


RETAIN_ALL: Final = _RetainAll()

# Milliseconds, or RETAIN_ALL
RetentionValue = Union[int, _RetainAll]


@dataclass(frozen=True)
class RetentionPolicy(Mapping[Granularity, RetentionValue]):
    """Read-only mapping of granularity to retention value.

    Covers exactly the granularities an aggregation maintains. Safe to read
    from any thread once constructed.
    """

    periods: Mapping[Granularity, RetentionValue]

    def __post_init__(self) -> None:
        for granularity, value in self.periods.items():
            if value is RETAIN_ALL:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(
                    f"Retention for {granularity.value} must be a positive number "
                    f"of milliseconds or RETAIN_ALL, got {value!r}"
                )
        frozen = MappingProxyType(dict(self.periods))
        object.__setattr__(self, "periods", frozen)

    def __getitem__(self, granularity: Granularity) -> RetentionValue:
        return self.periods[granularity]

    def __iter__(self) -> Iterator[Granularity]:
        return iter(self.periods)

    def __len__(self) -> int:
        return len(self.periods)

    def retains_all(self, granularity: Granularity) -> bool:
        """Whether rows of this granularity are never purged."""
        return self.periods[granularity] is RETAIN_ALL


@dataclass(frozen=True)
class PurgeConfig:
    """Whether purging runs, and how long to wait between ticks."""

    enabled: bool
    interval_ms: int


@dataclass(frozen=True)
class PurgeTarget:
    """One table's share of a purge tick."""

    granularity: Granularity
    table_id: str
    cutoff_ms: int


@dataclass
class PurgeTickResult:
    """Outcome of one purge tick.

    Attributes:
        now_ms: Wall-clock time the cutoffs were computed from
        purged: Targets whose delete succeeded, in processing order
        deleted_rows: Rows removed per table id
        skipped: Granularities skipped because they retain everything
    """

    now_ms: int
    purged: list[PurgeTarget] = field(default_factory=list)
    deleted_rows: dict[str, int] = field(default_factory=dict)
    skipped: list[Granularity] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted_rows.values())
