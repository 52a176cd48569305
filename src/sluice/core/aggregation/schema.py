"""SQLAlchemy table definitions for aggregation tables.

Uses SQLAlchemy Core (not ORM) for explicit control over queries and
compatibility with multiple database backends. Every aggregation keeps one
table per granularity, named `<aggregation>_<GRANULARITY>`, keyed by the
bucket start time in AGG_TIMESTAMP (epoch milliseconds).
"""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.types import TypeEngine

from sluice.contracts.definitions import Attribute, TableDefinition
from sluice.contracts.enums import AttributeType, Granularity
from sluice.core.config import AttributeSettings
from sluice.core.retention.predicate import AGG_TIMESTAMP, TIMESTAMP_ATTRIBUTE

_COLUMN_TYPES: dict[AttributeType, type[TypeEngine[Any]]] = {
    AttributeType.STRING: String,
    AttributeType.INT: Integer,
    AttributeType.LONG: BigInteger,
    AttributeType.FLOAT: Float,
    AttributeType.DOUBLE: Float,
    AttributeType.BOOL: Boolean,
}

# Reverse mapping used when reading a Table back into a TableDefinition.
# Float columns are reported as DOUBLE.
_ATTRIBUTE_TYPES: list[tuple[type[TypeEngine[Any]], AttributeType]] = [
    (BigInteger, AttributeType.LONG),
    (Integer, AttributeType.INT),
    (Float, AttributeType.DOUBLE),
    (Boolean, AttributeType.BOOL),
    (String, AttributeType.STRING),
]


def table_name(aggregation_id: str, granularity: Granularity) -> str:
    """Name of the table holding `granularity` buckets of an aggregation."""
    return f"{aggregation_id}_{granularity.name}"


def build_aggregation_table(
    metadata: MetaData,
    aggregation_id: str,
    granularity: Granularity,
    attributes: Iterable[AttributeSettings],
) -> Table:
    """Define one granularity table of an aggregation on `metadata`.

    Args:
        metadata: MetaData the table is registered on
        aggregation_id: Aggregation name (table name prefix)
        granularity: Bucket size stored in this table
        attributes: Group-by and aggregate columns, in order

    Returns:
        Table whose first column is AGG_TIMESTAMP
    """
    columns = [Column(AGG_TIMESTAMP, BigInteger, nullable=False, index=True)]
    for attribute in attributes:
        columns.append(Column(attribute.name, _COLUMN_TYPES[attribute.type]()))
    return Table(table_name(aggregation_id, granularity), metadata, *columns)


def columns_match(table: Table, attributes: Iterable[AttributeSettings]) -> bool:
    """Whether `table` has exactly the columns build_aggregation_table would give it."""
    expected = [(AGG_TIMESTAMP, BigInteger)]
    expected.extend((a.name, _COLUMN_TYPES[a.type]) for a in attributes)
    actual = [(column.name, type(column.type)) for column in table.columns]
    return actual == expected


def table_definition_for(table: Table) -> TableDefinition:
    """Describe a SQLAlchemy table as a TableDefinition, in column order.

    Raises:
        ValueError: If a column type has no attribute type equivalent
    """
    attributes = []
    for column in table.columns:
        if column.name == AGG_TIMESTAMP:
            attributes.append(TIMESTAMP_ATTRIBUTE)
            continue
        attributes.append(Attribute(column.name, _attribute_type(column.type)))
    return TableDefinition(id=table.name, attributes=tuple(attributes))


def _attribute_type(column_type: TypeEngine[Any]) -> AttributeType:
    for sql_type, attribute_type in _ATTRIBUTE_TYPES:
        if isinstance(column_type, sql_type):
            return attribute_type
    raise ValueError(f"Unsupported column type: {column_type!r}")
