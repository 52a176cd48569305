# tests/conftest.py
"""Shared test fixtures and helpers.

Provides a recording fake of the PurgeableTable protocol so purge ticks can
be observed without a database, plus an in-memory AggregationStore for
tests that exercise the SQL tables.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from sluice.contracts import (
    Attribute,
    AttributeType,
    Compare,
    CorrelationContext,
    Granularity,
    TableDefinition,
)
from sluice.core.aggregation.database import AggregationStore

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fake tables
# =============================================================================


class RecordingTable:
    """PurgeableTable fake that records every call.

    Usage:
        calls: list[tuple[str, int]] = []
        table = RecordingTable("Agg_SECONDS", calls)
        ...
        assert calls == [("Agg_SECONDS", cutoff)]

    A shared `calls` list lets tests check the order of deletes across
    tables. Set fail_compile / fail_delete to make the table raise.
    """

    def __init__(
        self,
        table_id: str,
        calls: list[tuple[str, int]] | None = None,
        *,
        fail_compile: bool = False,
        fail_delete: bool = False,
        deleted_rows: int = 0,
    ) -> None:
        self._definition = TableDefinition(
            id=table_id,
            attributes=(
                Attribute("AGG_TIMESTAMP", AttributeType.LONG),
                Attribute("total", AttributeType.DOUBLE),
            ),
        )
        self.calls = calls if calls is not None else []
        self.compile_calls: list[tuple[Compare, CorrelationContext, str]] = []
        self.batches: list[Sequence[tuple[Any, ...]]] = []
        self.fail_compile = fail_compile
        self.fail_delete = fail_delete
        self.deleted_rows = deleted_rows

    @property
    def definition(self) -> TableDefinition:
        return self._definition

    def compile_condition(
        self,
        expression: Compare,
        correlation: CorrelationContext,
        *,
        tables: Mapping[str, Any],
        query_name: str,
    ) -> Any:
        self.compile_calls.append((expression, correlation, query_name))
        if self.fail_compile:
            raise RuntimeError(f"cannot compile for {self._definition.id}")
        return ("compiled", self._definition.id)

    def delete_events(
        self,
        batch: Sequence[tuple[Any, ...]],
        compiled_condition: Any,
        parameter_slot: int,
    ) -> int:
        self.batches.append(batch)
        if self.fail_delete:
            raise RuntimeError(f"delete failed for {self._definition.id}")
        for record in batch:
            self.calls.append((self._definition.id, record[0]))
        return self.deleted_rows


def recording_tables(
    granularities: Sequence[Granularity],
    calls: list[tuple[str, int]] | None = None,
    *,
    prefix: str = "Agg",
) -> dict[Granularity, RecordingTable]:
    """One RecordingTable per granularity, in the given order, sharing `calls`."""
    shared = calls if calls is not None else []
    return {g: RecordingTable(f"{prefix}_{g.name}", shared) for g in granularities}


@pytest.fixture
def store() -> Iterator[AggregationStore]:
    """In-memory SQLite store, closed after the test."""
    with AggregationStore.in_memory() as aggregation_store:
        yield aggregation_store


# Re-export for convenient import
__all__ = ["RecordingTable", "recording_tables"]
