"""Exceptions raised across subsystem boundaries.

Configuration errors are raised while an aggregation is set up. A
DataPurgingError is raised from a single purge tick; the next tick tries
again.
"""


class DurationParseError(ValueError):
    """A duration literal such as "7 days" could not be parsed."""


class PurgeConfigurationError(ValueError):
    """Invalid purge configuration detected while setting up an aggregation."""


class ConditionCompilationError(Exception):
    """A table could not compile a delete condition against its schema."""


class DataPurgingError(Exception):
    """Deleting expired rows from an aggregation table failed.

    Attributes:
        table_id: Identifier of the table that failed
        cutoff_ms: Cutoff timestamp that was being applied
    """

    def __init__(self, table_id: str, cutoff_ms: int) -> None:
        super().__init__(
            f"Exception occurred while deleting events from {table_id} table "
            f"(cutoff {cutoff_ms})"
        )
        self.table_id = table_id
        self.cutoff_ms = cutoff_ms
