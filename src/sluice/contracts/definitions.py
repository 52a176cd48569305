"""Schema and condition types shared between the purge core and tables.

A table compiles a `Compare` expression whose operands are `Variable`
references. References are resolved through a `CorrelationContext`, which
lists the definitions (slots) an expression may refer to.
"""

from dataclasses import dataclass

from sluice.contracts.enums import AttributeType, CompareOperator
from sluice.contracts.errors import ConditionCompilationError


@dataclass(frozen=True)
class Attribute:
    """A named, typed attribute of a table or parameter record."""

    name: str
    type: AttributeType


@dataclass(frozen=True)
class TableDefinition:
    """Ordered schema of a table (or of a synthetic parameter record)."""

    id: str
    attributes: tuple[Attribute, ...]

    def attribute(self, name: str) -> Attribute | None:
        """Look up an attribute by name, None if absent."""
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    @property
    def attribute_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.attributes)


@dataclass(frozen=True)
class Variable:
    """Reference to an attribute, optionally qualified by a definition id."""

    attribute_name: str
    stream_id: str | None = None


@dataclass(frozen=True)
class Compare:
    """Binary comparison `left <operator> right`."""

    left: Variable
    operator: CompareOperator
    right: Variable


@dataclass(frozen=True)
class CorrelationContext:
    """Definitions an expression can reference, in slot order.

    Attributes:
        slots: Definitions indexed by slot number
        parameter_slot: Slot holding the per-call parameter record
        table_slot: Slot holding the target table's schema
    """

    slots: tuple[TableDefinition, ...]
    parameter_slot: int = 0
    table_slot: int = 1

    def __post_init__(self) -> None:
        for index in (self.parameter_slot, self.table_slot):
            if not 0 <= index < len(self.slots):
                raise ValueError(
                    f"Slot index {index} out of range for {len(self.slots)} slots"
                )
        if self.parameter_slot == self.table_slot:
            raise ValueError("parameter_slot and table_slot must differ")

    def resolve(self, variable: Variable) -> tuple[int, Attribute]:
        """Resolve a variable to (slot index, attribute).

        Qualified variables resolve to the slot whose definition id matches.
        Unqualified variables resolve to the first slot declaring the
        attribute, so the parameter slot wins when both slots share a name.

        Raises:
            ConditionCompilationError: If the reference cannot be resolved
        """
        for index, definition in enumerate(self.slots):
            if variable.stream_id is not None and definition.id != variable.stream_id:
                continue
            attribute = definition.attribute(variable.attribute_name)
            if attribute is not None:
                return index, attribute

        where = f" in '{variable.stream_id}'" if variable.stream_id is not None else ""
        raise ConditionCompilationError(
            f"Cannot resolve attribute '{variable.attribute_name}'{where}"
        )
