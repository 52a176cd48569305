"""Shared contracts for cross-boundary data types.

Import pattern:
    from sluice.contracts import Granularity, RETAIN_ALL, DataPurgingError
"""

from sluice.contracts.enums import (
    AttributeType,
    CompareOperator,
    Granularity,
)
from sluice.contracts.errors import (
    ConditionCompilationError,
    DataPurgingError,
    DurationParseError,
    PurgeConfigurationError,
)
from sluice.contracts.definitions import (
    Attribute,
    Compare,
    CorrelationContext,
    TableDefinition,
    Variable,
)
from sluice.contracts.retention import (
    RETAIN_ALL,
    PurgeConfig,
    PurgeTarget,
    PurgeTickResult,
    RetentionPolicy,
    RetentionValue,
)

__all__ = [
    # enums
    "AttributeType",
    "CompareOperator",
    "Granularity",
    # errors
    "ConditionCompilationError",
    "DataPurgingError",
    "DurationParseError",
    "PurgeConfigurationError",
    # definitions
    "Attribute",
    "Compare",
    "CorrelationContext",
    "TableDefinition",
    "Variable",
    # retention
    "RETAIN_ALL",
    "PurgeConfig",
    "PurgeTarget",
    "PurgeTickResult",
    "RetentionPolicy",
    "RetentionValue",
]
