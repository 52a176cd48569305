"""Aggregation tables: one SQL table per aggregation granularity."""

from sluice.core.aggregation.database import AggregationStore
from sluice.core.aggregation.schema import (
    build_aggregation_table,
    table_definition_for,
    table_name,
)
from sluice.core.aggregation.tables import AggregationTable, CompiledDelete

__all__ = [
    "AggregationStore",
    "AggregationTable",
    "CompiledDelete",
    "build_aggregation_table",
    "table_definition_for",
    "table_name",
]
