"""SQL-backed aggregation table.

Implements the PurgeableTable protocol on SQLAlchemy Core. Conditions are
compiled into a DELETE statement whose parameter-slot operands become bind
parameters, so one compiled statement serves every purge tick.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import Delete, Table, bindparam, delete, func, insert, select
from sqlalchemy.sql.elements import ColumnElement

from sluice.contracts.definitions import (
    Compare,
    CorrelationContext,
    TableDefinition,
    Variable,
)
from sluice.contracts.enums import CompareOperator
from sluice.contracts.errors import ConditionCompilationError
from sluice.core.aggregation.schema import table_definition_for
from sluice.core.retention.predicate import AGG_TIMESTAMP

if TYPE_CHECKING:
    from sluice.core.aggregation.database import AggregationStore

_OPERATORS: dict[CompareOperator, Callable[[Any, Any], ColumnElement[bool]]] = {
    CompareOperator.LESS_THAN: operator.lt,
    CompareOperator.LESS_THAN_EQUAL: operator.le,
    CompareOperator.GREATER_THAN: operator.gt,
    CompareOperator.GREATER_THAN_EQUAL: operator.ge,
    CompareOperator.EQUAL: operator.eq,
    CompareOperator.NOT_EQUAL: operator.ne,
}


@dataclass(frozen=True)
class CompiledDelete:
    """A DELETE statement ready to be executed with parameter records.

    Attributes:
        statement: DELETE with bind parameters for parameter-slot operands
        table_id: Table the statement deletes from
        query_name: Label for logs
        correlation: Context the condition was compiled against
    """

    statement: Delete
    table_id: str
    query_name: str
    correlation: CorrelationContext


def bind_key(attribute_name: str) -> str:
    """Bind parameter name for a parameter-record attribute."""
    return f"param_{attribute_name}"


class AggregationTable:
    """One granularity table of an aggregation."""

    def __init__(self, store: AggregationStore, table: Table) -> None:
        """Initialize table wrapper.

        Args:
            store: Database the table lives in
            table: SQLAlchemy table definition
        """
        self._store = store
        self._table = table
        self._definition = table_definition_for(table)

    @property
    def definition(self) -> TableDefinition:
        return self._definition

    @property
    def table_id(self) -> str:
        return self._definition.id

    @property
    def sql_table(self) -> Table:
        return self._table

    def compile_condition(
        self,
        expression: Compare,
        correlation: CorrelationContext,
        *,
        tables: Mapping[str, Any],
        query_name: str,
    ) -> CompiledDelete:
        """Compile `expression` into a DELETE against this table.

        Args:
            expression: Comparison between a table column and a parameter
            correlation: Slots the expression's variables resolve against
            tables: Every table known to the application, by id
            query_name: Label for the compiled statement

        Raises:
            ConditionCompilationError: If the correlation's table slot is not
                this table, an operand cannot be resolved, or the expression
                does not compare a column of this table with a parameter
        """
        table_slot_id = correlation.slots[correlation.table_slot].id
        if table_slot_id != self.table_id:
            raise ConditionCompilationError(
                f"{query_name}: condition is bound to '{table_slot_id}', "
                f"not '{self.table_id}'"
            )
        compare = _OPERATORS.get(expression.operator)
        if compare is None:
            raise ConditionCompilationError(
                f"{query_name}: unsupported operator {expression.operator!r}"
            )

        left, left_is_column = self._operand(expression.left, correlation, tables)
        right, right_is_column = self._operand(expression.right, correlation, tables)
        if left_is_column == right_is_column:
            raise ConditionCompilationError(
                f"{query_name}: condition must compare a column of "
                f"'{self.table_id}' with a parameter"
            )

        statement = delete(self._table).where(compare(left, right))
        return CompiledDelete(
            statement=statement,
            table_id=self.table_id,
            query_name=query_name,
            correlation=correlation,
        )

    def _operand(
        self,
        variable: Variable,
        correlation: CorrelationContext,
        tables: Mapping[str, Any],
    ) -> tuple[Any, bool]:
        slot, attribute = correlation.resolve(variable)

        if slot == correlation.table_slot:
            column = self._table.c.get(attribute.name)
            if column is None:
                raise ConditionCompilationError(
                    f"Table '{self.table_id}' has no column '{attribute.name}'"
                )
            return column, True

        if slot == correlation.parameter_slot:
            return bindparam(bind_key(attribute.name)), False

        other_id = correlation.slots[slot].id
        known = " (known table)" if other_id in tables else ""
        raise ConditionCompilationError(
            f"Cross-table reference to '{other_id}'{known} is not supported "
            f"in deletes from '{self.table_id}'"
        )

    def delete_events(
        self,
        batch: Sequence[tuple[Any, ...]],
        compiled_condition: CompiledDelete,
        parameter_slot: int,
    ) -> int:
        """Run the compiled DELETE once per parameter record, in one transaction.

        Args:
            batch: Parameter records, values in parameter-definition order
            compiled_condition: Result of compile_condition() on this table
            parameter_slot: Correlation slot describing the records

        Returns:
            Number of rows deleted

        Raises:
            ValueError: If the condition was compiled for another table or a
                record does not match the parameter definition
        """
        if compiled_condition.table_id != self.table_id:
            raise ValueError(
                f"Condition compiled for '{compiled_condition.table_id}' "
                f"cannot delete from '{self.table_id}'"
            )
        parameter_definition = compiled_condition.correlation.slots[parameter_slot]
        keys = [bind_key(name) for name in parameter_definition.attribute_names]

        parameters = []
        for record in batch:
            if len(record) != len(keys):
                raise ValueError(
                    f"Parameter record {record!r} does not match "
                    f"{list(parameter_definition.attribute_names)}"
                )
            parameters.append(dict(zip(keys, record)))

        deleted = 0
        with self._store.connection() as conn:
            for params in parameters:
                deleted += conn.execute(compiled_condition.statement, params).rowcount
        return deleted

    def insert_rows(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Insert aggregated rows. Returns the number inserted."""
        values = [dict(row) for row in rows]
        if not values:
            return 0
        with self._store.connection() as conn:
            conn.execute(insert(self._table), values)
        return len(values)

    def count_rows(self, older_than: int | None = None) -> int:
        """Count rows, optionally only those with AGG_TIMESTAMP < older_than."""
        query = select(func.count()).select_from(self._table)
        if older_than is not None:
            query = query.where(self._table.c[AGG_TIMESTAMP] < older_than)
        with self._store.connection() as conn:
            return int(conn.execute(query).scalar_one())
