"""Sluice engine: purge runtime for configured aggregations."""

from sluice.engine.runtime import AggregationPurge, PurgeRuntime

__all__ = ["AggregationPurge", "PurgeRuntime"]
