# src/sluice/core/retention/purge.py
"""Purge task for incremental aggregation tables.

Each tick computes a cutoff per granularity (now minus that granularity's
retention) and asks the granularity's table to delete every row whose
AGG_TIMESTAMP is older than the cutoff. Granularities that retain all rows
are skipped.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from sluice.contracts.definitions import Compare, CorrelationContext, TableDefinition
from sluice.contracts.enums import Granularity
from sluice.contracts.errors import DataPurgingError
from sluice.contracts.retention import (
    PurgeConfig,
    PurgeTarget,
    PurgeTickResult,
    RetentionPolicy,
)
from sluice.core.clock import Clock, SystemClock
from sluice.core.logging import get_logger
from sluice.core.retention.policy import resolve_purge_policy
from sluice.core.retention.predicate import DeletionPredicate, build_deletion_predicate

if TYPE_CHECKING:
    from sluice.core.config import AggregationSettings

logger = get_logger(__name__)


class PurgeableTable(Protocol):
    """Protocol for aggregation tables, to keep storage out of the purge core.

    Defines the minimal interface required by IncrementalPurgeTask.
    """

    @property
    def definition(self) -> TableDefinition:
        """Schema of the table, including AGG_TIMESTAMP."""
        ...

    def compile_condition(
        self,
        expression: Compare,
        correlation: CorrelationContext,
        *,
        tables: Mapping[str, PurgeableTable],
        query_name: str,
    ) -> Any:
        """Compile a delete condition. May raise if the schema does not match."""
        ...

    def delete_events(
        self,
        batch: Sequence[tuple[Any, ...]],
        compiled_condition: Any,
        parameter_slot: int,
    ) -> int:
        """Delete rows matching the condition once per parameter record.

        Returns the number of rows deleted.
        """
        ...


class IncrementalPurgeTask:
    """Deletes expired rows from an aggregation's per-granularity tables.

    Built once per aggregation with from_definition(); the retention policy,
    purge config and table set are read-only afterwards. run() is the entry
    point handed to the scheduler.

    Example:
        task = IncrementalPurgeTask.from_definition(aggregation, tables)
        if task.is_purging_enabled:
            scheduler.install_or_replace(task)
    """

    def __init__(
        self,
        tables: Mapping[Granularity, PurgeableTable],
        policy: RetentionPolicy,
        config: PurgeConfig,
        *,
        table_registry: Mapping[str, PurgeableTable] | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the task.

        Args:
            tables: Table per aggregated granularity
            policy: Resolved retention per granularity (same keys as tables)
            config: Resolved enable flag and interval
            table_registry: All tables known to the application, by id
            clock: Wall-clock source (defaults to SystemClock)

        Raises:
            ValueError: If policy and tables cover different granularities
        """
        if set(policy) != set(tables):
            raise ValueError(
                "Retention policy must cover exactly the aggregated granularities: "
                f"policy={sorted(g.value for g in policy)}, "
                f"tables={sorted(g.value for g in tables)}"
            )
        self._tables = dict(tables)
        self._policy = policy
        self._config = config
        self._table_registry: Mapping[str, PurgeableTable] = (
            table_registry
            if table_registry is not None
            else {t.definition.id: t for t in self._tables.values()}
        )
        self._clock: Clock = clock if clock is not None else SystemClock()

        self._predicates: dict[Granularity, DeletionPredicate] = {
            granularity: build_deletion_predicate(table.definition)
            for granularity, table in self._tables.items()
            if not policy.retains_all(granularity)
        }
        # Filled lazily; a failed compilation is retried on the next tick
        self._compiled: dict[Granularity, Any] = {}
        self._compile_lock = threading.Lock()

    @classmethod
    def from_definition(
        cls,
        definition: AggregationSettings,
        tables: Mapping[Granularity, PurgeableTable],
        *,
        table_registry: Mapping[str, PurgeableTable] | None = None,
        clock: Clock | None = None,
    ) -> IncrementalPurgeTask:
        """Resolve the definition's purge block and build the task.

        Retention defaults cover the granularities present in `tables`.

        Raises:
            PurgeConfigurationError: If the purge block is invalid
        """
        policy, config = resolve_purge_policy(tables.keys(), definition.purge)
        return cls(
            tables,
            policy,
            config,
            table_registry=table_registry,
            clock=clock,
        )

    @property
    def is_purging_enabled(self) -> bool:
        return self._config.enabled

    @property
    def interval_ms(self) -> int:
        return self._config.interval_ms

    @property
    def retention_policy(self) -> RetentionPolicy:
        return self._policy

    @property
    def purge_config(self) -> PurgeConfig:
        return self._config

    @property
    def tables(self) -> Mapping[Granularity, PurgeableTable]:
        return self._tables

    def plan(self, now_ms: int) -> list[PurgeTarget]:
        """Cutoffs a tick at `now_ms` would apply, in processing order."""
        targets: list[PurgeTarget] = []
        for granularity, table in self._tables.items():
            retention = self._policy[granularity]
            if isinstance(retention, int):
                targets.append(
                    PurgeTarget(
                        granularity=granularity,
                        table_id=table.definition.id,
                        cutoff_ms=now_ms - retention,
                    )
                )
        return targets

    def run(self) -> None:
        """Scheduler entry point: purge every eligible table once."""
        self.purge()

    def purge(self, now_ms: int | None = None) -> PurgeTickResult:
        """Execute one purge tick.

        Tables are processed in table-set order. The first failure stops the
        tick; tables already purged stay purged.

        Args:
            now_ms: Reference time for cutoffs (defaults to the clock)

        Returns:
            PurgeTickResult describing what was deleted

        Raises:
            DataPurgingError: If compiling or executing a delete fails
        """
        if now_ms is None:
            now_ms = self._clock.now_ms()
        result = PurgeTickResult(now_ms=now_ms)

        if not self._config.enabled:
            logger.debug("purge.disabled")
            return result

        result.skipped = [g for g in self._tables if self._policy.retains_all(g)]

        for target in self.plan(now_ms):
            table = self._tables[target.granularity]
            predicate = self._predicates[target.granularity]
            # Fresh per tick; never shared between firings
            batch = [(target.cutoff_ms,)]
            try:
                compiled = self._compiled_condition(target.granularity, table, predicate)
                deleted = table.delete_events(
                    batch, compiled, predicate.correlation.parameter_slot
                )
            except Exception as e:
                logger.exception(
                    "purge.table_failed",
                    table=target.table_id,
                    cutoff_ms=target.cutoff_ms,
                )
                raise DataPurgingError(target.table_id, target.cutoff_ms) from e

            logger.info(
                "purge.table_purged",
                table=target.table_id,
                cutoff_ms=target.cutoff_ms,
                deleted_rows=deleted,
            )
            result.purged.append(target)
            result.deleted_rows[target.table_id] = deleted

        return result

    def _compiled_condition(
        self,
        granularity: Granularity,
        table: PurgeableTable,
        predicate: DeletionPredicate,
    ) -> Any:
        with self._compile_lock:
            compiled = self._compiled.get(granularity)
            if compiled is None:
                compiled = table.compile_condition(
                    predicate.expression,
                    predicate.correlation,
                    tables=self._table_registry,
                    query_name=f"{predicate.table_id}DeleteQuery",
                )
                self._compiled[granularity] = compiled
            return compiled
