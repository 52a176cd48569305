# src/sluice/core/retention/__init__.py
"""Retention purging for incremental aggregation tables.

Provides the retention policy resolver, the deletion predicate builder, the
per-tick IncrementalPurgeTask and the PurgeScheduler that runs it.
"""

from sluice.core.retention.policy import (
    DEFAULT_PURGE_INTERVAL_MS,
    DEFAULT_RETENTION,
    resolve_purge_policy,
)
from sluice.core.retention.predicate import (
    AGG_TIMESTAMP,
    DeletionPredicate,
    build_deletion_predicate,
)
from sluice.core.retention.purge import IncrementalPurgeTask, PurgeableTable
from sluice.core.retention.scheduler import (
    PurgeScheduler,
    ScheduledExecutor,
    ThreadScheduledExecutor,
)

__all__ = [
    "AGG_TIMESTAMP",
    "DEFAULT_PURGE_INTERVAL_MS",
    "DEFAULT_RETENTION",
    "DeletionPredicate",
    "IncrementalPurgeTask",
    "PurgeScheduler",
    "PurgeableTable",
    "ScheduledExecutor",
    "ThreadScheduledExecutor",
    "build_deletion_predicate",
    "resolve_purge_policy",
]
