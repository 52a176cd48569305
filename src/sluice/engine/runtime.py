# src/sluice/engine/runtime.py
"""PurgeRuntime: purge lifecycle for every configured aggregation.

Builds each aggregation's tables and IncrementalPurgeTask (validating every
purge block up front), gives each aggregation its own PurgeScheduler on a
shared executor, and tears everything down on close().
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import TracebackType

from sluice.contracts.enums import Granularity
from sluice.contracts.retention import PurgeTickResult
from sluice.core.aggregation.database import AggregationStore
from sluice.core.aggregation.tables import AggregationTable
from sluice.core.clock import Clock
from sluice.core.config import AggregationSettings, SluiceSettings
from sluice.core.logging import get_logger
from sluice.core.retention.policy import resolve_purge_policy
from sluice.core.retention.purge import IncrementalPurgeTask
from sluice.core.retention.scheduler import (
    PurgeScheduler,
    ScheduledExecutor,
    ThreadScheduledExecutor,
)

logger = get_logger(__name__)


@dataclass
class AggregationPurge:
    """Purge state of one aggregation."""

    settings: AggregationSettings
    tables: dict[Granularity, AggregationTable]
    task: IncrementalPurgeTask
    scheduler: PurgeScheduler


class PurgeRuntime:
    """Owns purge tasks and timers for all aggregations of an application.

    Example:
        settings = load_settings(Path("settings.yaml"))
        with PurgeRuntime(settings) as runtime:
            runtime.start()
            ...  # purging runs in the background
    """

    def __init__(
        self,
        settings: SluiceSettings,
        *,
        store: AggregationStore | None = None,
        executor: ScheduledExecutor | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Build every aggregation's purge task.

        Args:
            settings: Validated application settings
            store: Database holding the tables (created from settings if None)
            executor: Shared timer executor (a thread pool if None)
            clock: Wall-clock source for cutoffs (system clock if None)

        Raises:
            PurgeConfigurationError: If any aggregation's purge block is invalid
        """
        self._owns_store = store is None
        self._store = (
            store
            if store is not None
            else AggregationStore(settings.database.url, echo=settings.database.echo)
        )
        self._owns_executor = executor is None
        self._executor: ScheduledExecutor = (
            executor
            if executor is not None
            else ThreadScheduledExecutor(max_workers=settings.scheduler.max_workers)
        )
        self._clock = clock
        self._lock = threading.Lock()
        self._started = False
        self._table_registry: dict[str, AggregationTable] = {}
        self._aggregations: dict[str, AggregationPurge] = {}

        try:
            for aggregation in settings.aggregations:
                tables, task = self._build(aggregation)
                self._aggregations[aggregation.name] = AggregationPurge(
                    settings=aggregation,
                    tables=tables,
                    task=task,
                    scheduler=PurgeScheduler(self._executor, name=aggregation.name),
                )
        except Exception:
            self._release()
            raise

    @property
    def store(self) -> AggregationStore:
        return self._store

    @property
    def aggregations(self) -> dict[str, AggregationPurge]:
        return dict(self._aggregations)

    def get(self, name: str) -> AggregationPurge:
        """Look up an aggregation's purge state.

        Raises:
            KeyError: If no aggregation has that name
        """
        if name not in self._aggregations:
            raise KeyError(
                f"Aggregation '{name}' not found. Available: {sorted(self._aggregations)}"
            )
        return self._aggregations[name]

    def _build(
        self, aggregation: AggregationSettings
    ) -> tuple[dict[Granularity, AggregationTable], IncrementalPurgeTask]:
        # Validate before the store or the registry is touched
        policy, config = resolve_purge_policy(aggregation.granularities, aggregation.purge)
        tables = self._store.create_tables(aggregation)
        task = IncrementalPurgeTask(
            tables,
            policy,
            config,
            table_registry=self._table_registry,
            clock=self._clock,
        )
        for table in tables.values():
            self._table_registry[table.table_id] = table
        return tables, task

    def start(self) -> None:
        """Install a purge timer for every aggregation with purging enabled."""
        with self._lock:
            self._started = True
            for name, entry in self._aggregations.items():
                self._apply_schedule(name, entry)

    def reconfigure(self, aggregation: AggregationSettings) -> None:
        """Replace an aggregation's purge configuration.

        The purge block is validated before any table is created or the
        running timer is touched; an invalid definition leaves the old one in
        place.

        Raises:
            KeyError: If the aggregation is unknown
            PurgeConfigurationError: If the new purge block is invalid
            ValueError: If the attributes differ from the existing tables
        """
        with self._lock:
            entry = self.get(aggregation.name)
            tables, task = self._build(aggregation)
            entry.settings = aggregation
            entry.tables = tables
            entry.task = task
            if self._started:
                self._apply_schedule(aggregation.name, entry)
        logger.info("runtime.reconfigured", aggregation=aggregation.name)

    def _apply_schedule(self, name: str, entry: AggregationPurge) -> None:
        if entry.task.is_purging_enabled:
            entry.scheduler.install_or_replace(entry.task)
        else:
            entry.scheduler.cancel()
            logger.info("purge.disabled", aggregation=name)

    def purge_once(
        self,
        *,
        aggregation: str | None = None,
        now_ms: int | None = None,
    ) -> dict[str, PurgeTickResult]:
        """Run one purge tick now, outside the schedule.

        Args:
            aggregation: Only purge this aggregation (all if None)
            now_ms: Reference time for cutoffs (clock if None)

        Returns:
            Tick result per purged aggregation (disabled ones are omitted)

        Raises:
            KeyError: If `aggregation` is unknown
            DataPurgingError: If a table fails; later aggregations are not purged
        """
        names = [aggregation] if aggregation is not None else list(self._aggregations)
        results: dict[str, PurgeTickResult] = {}
        for name in names:
            task = self.get(name).task
            if not task.is_purging_enabled:
                continue
            results[name] = task.purge(now_ms)
        return results

    def close(self) -> None:
        """Cancel every purge timer and release owned resources."""
        with self._lock:
            self._started = False
            for entry in self._aggregations.values():
                entry.scheduler.cancel()
        self._release()

    def _release(self) -> None:
        if self._owns_executor and isinstance(self._executor, ThreadScheduledExecutor):
            self._executor.shutdown()
        if self._owns_store:
            self._store.close()

    def __enter__(self) -> PurgeRuntime:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
