"""Tests for PurgeRuntime."""

from collections.abc import Callable
from typing import Any

import pytest

from sluice.contracts import Granularity

NOW = 1_700_000_000_000


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self, interrupt_if_running: bool) -> bool:
        was_active = not self.cancelled
        self.cancelled = True
        return was_active


class FakeExecutor:
    def __init__(self) -> None:
        self.scheduled: list[tuple[Callable[[], None], int, FakeHandle]] = []

    def schedule_with_fixed_delay(
        self, task: Callable[[], None], initial_delay_ms: int, period_ms: int
    ) -> FakeHandle:
        handle = FakeHandle()
        self.scheduled.append((task, period_ms, handle))
        return handle

    @property
    def active(self) -> list[tuple[Callable[[], None], int, FakeHandle]]:
        return [entry for entry in self.scheduled if not entry[2].cancelled]


def _settings(*aggregations: dict[str, Any]):
    from sluice.core.config import SluiceSettings

    return SluiceSettings(aggregations=list(aggregations))


def _runtime(store, executor, *aggregations: dict[str, Any]):
    from sluice.core.clock import MockClock
    from sluice.engine.runtime import PurgeRuntime

    return PurgeRuntime(
        _settings(*aggregations), store=store, executor=executor, clock=MockClock(NOW)
    )


class TestConstruction:
    """Every aggregation is built and validated up front."""

    def test_builds_each_aggregation(self, store) -> None:
        runtime = _runtime(
            store,
            FakeExecutor(),
            {"name": "Stock", "granularities": ["sec", "min"]},
            {"name": "Trade", "granularities": ["hour"]},
        )

        assert set(runtime.aggregations) == {"Stock", "Trade"}
        assert list(runtime.get("Stock").tables) == [Granularity.SECONDS, Granularity.MINUTES]
        assert runtime.get("Trade").task.interval_ms == 900_000
        assert runtime.store is store

    def test_invalid_purge_block_raises(self, store) -> None:
        from sluice.contracts import PurgeConfigurationError

        with pytest.raises(PurgeConfigurationError, match="days granularity"):
            _runtime(
                store,
                FakeExecutor(),
                {
                    "name": "Stock",
                    "granularities": ["sec"],
                    "purge": {"retention": {"days": "1 d"}},
                },
            )

    def test_get_unknown_aggregation(self, store) -> None:
        runtime = _runtime(store, FakeExecutor(), {"name": "Stock", "granularities": ["sec"]})

        with pytest.raises(KeyError, match="Missing"):
            runtime.get("Missing")


class TestScheduling:
    """start/reconfigure/close drive one timer per aggregation."""

    def test_start_installs_enabled_only(self, store) -> None:
        executor = FakeExecutor()
        runtime = _runtime(
            store,
            executor,
            {"name": "Stock", "granularities": ["sec"], "purge": {"interval": "1 min"}},
            {"name": "Trade", "granularities": ["sec"], "purge": {"enable": False}},
        )

        runtime.start()

        assert len(executor.active) == 1
        assert executor.active[0][1] == 60_000
        assert runtime.get("Stock").scheduler.is_scheduled
        assert not runtime.get("Trade").scheduler.is_scheduled

    def test_nothing_scheduled_before_start(self, store) -> None:
        executor = FakeExecutor()
        _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})

        assert executor.scheduled == []

    def test_reconfigure_replaces_timer(self, store) -> None:
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()

        runtime.reconfigure(
            AggregationSettings(
                name="Stock", granularities=["sec"], purge={"interval": "5 min"}
            )
        )

        assert len(executor.scheduled) == 2
        assert len(executor.active) == 1
        assert executor.active[0][1] == 300_000
        assert runtime.get("Stock").task.interval_ms == 300_000

    def test_reconfigure_to_disabled_cancels(self, store) -> None:
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()

        runtime.reconfigure(
            AggregationSettings(name="Stock", granularities=["sec"], purge={"enable": "false"})
        )

        assert executor.active == []
        assert not runtime.get("Stock").task.is_purging_enabled

    def test_invalid_reconfigure_keeps_old_task(self, store) -> None:
        from sqlalchemy import inspect

        from sluice.contracts import PurgeConfigurationError
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()
        old_task = runtime.get("Stock").task

        with pytest.raises(PurgeConfigurationError):
            runtime.reconfigure(
                AggregationSettings(
                    name="Stock",
                    granularities=["sec", "hour"],
                    purge={"enable": "maybe"},
                )
            )

        assert runtime.get("Stock").task is old_task
        assert list(runtime.get("Stock").tables) == [Granularity.SECONDS]
        assert len(executor.active) == 1
        # Nothing was created for the rejected definition
        assert "Stock_HOURS" not in store.metadata.tables
        assert inspect(store.engine).get_table_names() == ["Stock_SECONDS"]
        assert set(runtime._table_registry) == {"Stock_SECONDS"}

    def test_invalid_interval_on_reconfigure(self, store) -> None:
        from sluice.contracts import PurgeConfigurationError
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()
        old_task = runtime.get("Stock").task

        with pytest.raises(PurgeConfigurationError):
            runtime.reconfigure(
                AggregationSettings(
                    name="Stock", granularities=["sec"], purge={"interval": "whenever"}
                )
            )

        assert runtime.get("Stock").task is old_task
        assert len(executor.active) == 1

    def test_reconfigure_cannot_change_attributes(self, store) -> None:
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()
        old_task = runtime.get("Stock").task

        with pytest.raises(ValueError, match="cannot change"):
            runtime.reconfigure(
                AggregationSettings(
                    name="Stock",
                    granularities=["sec", "hour"],
                    attributes=[{"name": "symbol", "type": "string"}],
                )
            )

        assert runtime.get("Stock").task is old_task
        assert "Stock_HOURS" not in store.metadata.tables

    def test_reconfigure_adds_granularity(self, store) -> None:
        from sluice.core.config import AggregationSettings

        runtime = _runtime(store, FakeExecutor(), {"name": "Stock", "granularities": ["sec"]})

        runtime.reconfigure(AggregationSettings(name="Stock", granularities=["sec", "hour"]))

        assert list(runtime.get("Stock").tables) == [Granularity.SECONDS, Granularity.HOURS]
        assert set(runtime._table_registry) == {"Stock_SECONDS", "Stock_HOURS"}

    def test_reconfigure_before_start_does_not_schedule(self, store) -> None:
        from sluice.core.config import AggregationSettings

        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})

        runtime.reconfigure(AggregationSettings(name="Stock", granularities=["sec"]))

        assert executor.scheduled == []

    def test_reconfigure_unknown_aggregation(self, store) -> None:
        from sluice.core.config import AggregationSettings

        runtime = _runtime(store, FakeExecutor(), {"name": "Stock", "granularities": ["sec"]})

        with pytest.raises(KeyError):
            runtime.reconfigure(AggregationSettings(name="Other", granularities=["sec"]))

    def test_close_cancels_timers_but_keeps_borrowed_store(self, store) -> None:
        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        runtime.start()

        runtime.close()

        assert executor.active == []
        # Borrowed store is still usable
        assert runtime.get("Stock").tables[Granularity.SECONDS].count_rows() == 0

    def test_scheduled_callable_runs_a_tick(self, store) -> None:
        executor = FakeExecutor()
        runtime = _runtime(store, executor, {"name": "Stock", "granularities": ["sec"]})
        table = runtime.get("Stock").tables[Granularity.SECONDS]
        table.insert_rows([{"AGG_TIMESTAMP": NOW - 60_000}, {"AGG_TIMESTAMP": NOW}])
        runtime.start()

        scheduled_run = executor.active[0][0]
        scheduled_run()

        assert table.count_rows() == 1


class TestPurgeOnce:
    """Manual ticks outside the schedule."""

    def test_purges_every_enabled_aggregation(self, store) -> None:
        runtime = _runtime(
            store,
            FakeExecutor(),
            {"name": "Stock", "granularities": ["sec"]},
            {"name": "Trade", "granularities": ["sec"], "purge": {"enable": "false"}},
        )
        runtime.get("Stock").tables[Granularity.SECONDS].insert_rows(
            [{"AGG_TIMESTAMP": NOW - 60_000}]
        )
        runtime.get("Trade").tables[Granularity.SECONDS].insert_rows(
            [{"AGG_TIMESTAMP": NOW - 60_000}]
        )

        results = runtime.purge_once()

        assert list(results) == ["Stock"]
        assert results["Stock"].now_ms == NOW
        assert results["Stock"].deleted_rows == {"Stock_SECONDS": 1}
        assert runtime.get("Trade").tables[Granularity.SECONDS].count_rows() == 1

    def test_single_aggregation_and_explicit_time(self, store) -> None:
        runtime = _runtime(
            store,
            FakeExecutor(),
            {"name": "Stock", "granularities": ["sec"]},
            {"name": "Trade", "granularities": ["sec"]},
        )

        results = runtime.purge_once(aggregation="Trade", now_ms=5_000_000)

        assert list(results) == ["Trade"]
        assert results["Trade"].purged[0].cutoff_ms == 5_000_000 - 30_000

    def test_unknown_aggregation(self, store) -> None:
        runtime = _runtime(store, FakeExecutor(), {"name": "Stock", "granularities": ["sec"]})

        with pytest.raises(KeyError):
            runtime.purge_once(aggregation="Missing")


class TestOwnedResources:
    """Resources created by the runtime are released on close."""

    def test_owned_store_and_executor(self, tmp_path) -> None:
        from sluice.core.config import SluiceSettings
        from sluice.engine.runtime import PurgeRuntime

        settings = SluiceSettings(
            aggregations=[{"name": "Stock", "granularities": ["sec"]}],
            database={"url": f"sqlite:///{tmp_path / 'agg.db'}"},
            scheduler={"max_workers": 1},
        )

        with PurgeRuntime(settings) as runtime:
            runtime.start()
            assert runtime.get("Stock").scheduler.is_scheduled

        assert not runtime.get("Stock").scheduler.is_scheduled
        with pytest.raises(RuntimeError, match="not initialized"):
            _ = runtime.store.engine
