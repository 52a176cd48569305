"""Deletion predicate construction for aggregation tables.

The predicate is `<table>.AGG_TIMESTAMP < AGG_TIMESTAMP`, where the right
operand refers to a synthetic one-attribute parameter record rather than a
literal. A table compiles it once and re-executes it with a new cutoff
every tick.
"""

from dataclasses import dataclass
from typing import Final

from sluice.contracts.definitions import (
    Attribute,
    Compare,
    CorrelationContext,
    TableDefinition,
    Variable,
)
from sluice.contracts.enums import AttributeType, CompareOperator

AGG_TIMESTAMP: Final = "AGG_TIMESTAMP"

TIMESTAMP_ATTRIBUTE: Final = Attribute(AGG_TIMESTAMP, AttributeType.LONG)

# Slot 0 of every deletion correlation context
PARAMETER_DEFINITION: Final = TableDefinition(id="", attributes=(TIMESTAMP_ATTRIBUTE,))


@dataclass(frozen=True)
class DeletionPredicate:
    """Expression plus the correlation context needed to compile it."""

    expression: Compare
    correlation: CorrelationContext

    @property
    def table_id(self) -> str:
        return self.correlation.slots[self.correlation.table_slot].id

    @property
    def parameter_definition(self) -> TableDefinition:
        return self.correlation.slots[self.correlation.parameter_slot]


def build_deletion_predicate(table: TableDefinition) -> DeletionPredicate:
    """Build the "older than cutoff" predicate for one table.

    Args:
        table: Schema of the aggregation table to purge

    Returns:
        DeletionPredicate whose left operand is the table's timestamp
        column and whose right operand is the parameter record's cutoff
    """
    expression = Compare(
        left=Variable(AGG_TIMESTAMP, stream_id=table.id),
        operator=CompareOperator.LESS_THAN,
        right=Variable(AGG_TIMESTAMP),
    )
    correlation = CorrelationContext(
        slots=(PARAMETER_DEFINITION, table),
        parameter_slot=0,
        table_slot=1,
    )
    return DeletionPredicate(expression=expression, correlation=correlation)
