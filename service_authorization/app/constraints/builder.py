"""
Fluent builder for ability constraints.
"""

from typing import Any, Callable, List, Tuple, Union

from shared.errors import ConstraintParameterError
from .models import (
    AND, OR, COMPARISON_OPERATORS,
    Constraint, ConstraintNode, ValuePredicate, ColumnPredicate, Group
)


def where(column: str, *args: Any) -> ValuePredicate:
    """``where(col, value)`` compares with ``=``; ``where(col, op, value)`` with ``op``."""
    operator, value = _prepare_operator_and_value(args)
    return ValuePredicate(column, operator, value)


def or_where(column: str, *args: Any) -> ValuePredicate:
    return where(column, *args).with_logical_operator(OR)


def where_column(column: str, *args: Any) -> ColumnPredicate:
    operator, other_column = _prepare_operator_and_value(args)
    if not isinstance(other_column, str):
        raise ConstraintParameterError("Column name must be a string", {"column": repr(other_column)})
    return ColumnPredicate(column, operator, other_column)


def or_where_column(column: str, *args: Any) -> ColumnPredicate:
    return where_column(column, *args).with_logical_operator(OR)


def _prepare_operator_and_value(args: Tuple[Any, ...]) -> Tuple[str, Any]:
    if len(args) == 1:
        return "=", args[0]
    if len(args) != 2:
        raise ConstraintParameterError(
            "Expected a value, or an operator and a value",
            {"arguments": len(args)}
        )

    operator, value = args
    if not isinstance(operator, str):
        raise ConstraintParameterError("Operator must be a string", {"operator": repr(operator)})
    if operator not in COMPARISON_OPERATORS:
        raise ConstraintParameterError(f"{operator} is not a valid operator", {"operator": operator})
    return operator, value


class ConstraintBuilder:
    """Query-builder style construction of constraint trees.

    Example::

        ConstraintBuilder.make() \\
            .where("status", "draft") \\
            .or_where(lambda b: b.where("priority", ">", 3).where_column("owner_id", "id")) \\
            .build()

    A callable in place of a column opens a nested group.
    """

    def __init__(self):
        self._constraints: List[ConstraintNode] = []

    @classmethod
    def make(cls) -> "ConstraintBuilder":
        return cls()

    def where(self, column: Union[str, Callable[["ConstraintBuilder"], Any]], *args: Any) -> "ConstraintBuilder":
        if callable(column):
            return self._where_nested(AND, column)
        return self._add(where(column, *args))

    def or_where(self, column: Union[str, Callable[["ConstraintBuilder"], Any]], *args: Any) -> "ConstraintBuilder":
        if callable(column):
            return self._where_nested(OR, column)
        return self._add(or_where(column, *args))

    def where_column(self, column: str, *args: Any) -> "ConstraintBuilder":
        return self._add(where_column(column, *args))

    def or_where_column(self, column: str, *args: Any) -> "ConstraintBuilder":
        return self._add(or_where_column(column, *args))

    def build(self) -> Constraint:
        """A single constraint is returned as is; anything else becomes a group."""
        if len(self._constraints) == 1:
            return self._constraints[0]
        return Group(self._constraints)

    def _where_nested(self, logical_operator: str, callback: Callable[["ConstraintBuilder"], Any]) -> "ConstraintBuilder":
        builder = ConstraintBuilder()
        callback(builder)
        return self._add(builder.build().with_logical_operator(logical_operator))

    def _add(self, constraint: ConstraintNode) -> "ConstraintBuilder":
        self._constraints.append(constraint)
        return self
