"""
Constraint tree for fine-grained ability rules.

A constraint is one of three node kinds:

- ValuePredicate: ``target[column] <op> literal``
- ColumnPredicate: ``target[column] <op> actor[other_column]``
- Group: ordered children folded left to right, each by its own
  logical operator

Every node serializes to ``{"kind": ..., "params": {...}}`` and is rebuilt
with ``constraint_from_data``. Equality is strict: ``1`` and ``True`` or
``1`` and ``1.0`` are different values.

Literal values must survive a JSON round trip unchanged (None, bool,
numbers, strings, lists and string-keyed dicts of those), since ability
options are cached as JSON.
"""

from typing import Dict, Any, Optional, List, Iterable, Mapping, Union
from operator import lt, gt, le, ge

from shared.errors import ConstraintParameterError, InvalidLogicalOperatorError, UnsupportedOperatorError


AND = "and"
OR = "or"
LOGICAL_OPERATORS = (AND, OR)
COMPARISON_OPERATORS = ("=", "==", "!=", "<", ">", "<=", ">=")

_ORDERINGS = {"<": lt, ">": gt, "<=": le, ">=": ge}


def ensure_valid_logical_operator(operator: Any) -> str:
    if not isinstance(operator, str) or operator not in LOGICAL_OPERATORS:
        raise InvalidLogicalOperatorError(operator)
    return operator


def read_attribute(entity: Any, name: str) -> Any:
    """Read ``name`` from a mapping, an entity or a plain object."""
    if entity is None:
        return None
    if isinstance(entity, Mapping):
        return entity.get(name)
    getter = getattr(entity, "get_attribute", None)
    if callable(getter):
        return getter(name)
    return getattr(entity, name, None)


def strict_equals(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def is_json_value(value: Any) -> bool:
    if value is None or isinstance(value, (str, int, float, bool)):
        return True
    if isinstance(value, list):
        return all(is_json_value(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(key, str) and is_json_value(item) for key, item in value.items())
    return False


class ConstraintNode:
    """Behavior shared by every node of the tree."""

    kind = ""

    def __init__(self, logical_operator: str = AND):
        self.logical_operator = logical_operator

    @property
    def logical_operator(self) -> str:
        return self._logical_operator

    @logical_operator.setter
    def logical_operator(self, operator: str):
        self._logical_operator = ensure_valid_logical_operator(operator)

    def with_logical_operator(self, operator: str) -> "ConstraintNode":
        self.logical_operator = operator
        return self

    @property
    def is_and(self) -> bool:
        return self._logical_operator == AND

    @property
    def is_or(self) -> bool:
        return self._logical_operator == OR

    def check(self, entity: Any, actor: Any = None) -> bool:
        raise NotImplementedError

    def data(self) -> Dict[str, Any]:
        raise NotImplementedError

    def equals(self, other: Any) -> bool:
        raise NotImplementedError

    def __eq__(self, other: Any) -> bool:
        return self.equals(other)

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.data()['params']!r})"


class Predicate(ConstraintNode):
    """A leaf comparing one target attribute to something."""

    def __init__(self, column: str, operator: str, logical_operator: str = AND):
        if not isinstance(column, str) or not isinstance(operator, str):
            raise ConstraintParameterError(
                "Column and operator must be strings",
                {"column": repr(column), "operator": repr(operator)}
            )
        super().__init__(logical_operator)
        self.column = column
        self.operator = operator

    def compare(self, a: Any, b: Any) -> bool:
        if self.operator in ("=", "=="):
            return strict_equals(a, b)
        if self.operator == "!=":
            return not strict_equals(a, b)

        ordering = _ORDERINGS.get(self.operator)
        if ordering is None:
            raise UnsupportedOperatorError(self.operator)
        try:
            return ordering(a, b)
        except TypeError:
            # Incomparable values (None, mixed types) never satisfy an ordering
            return False


class ValuePredicate(Predicate):
    """``target[column] <op> value``."""

    kind = "value"

    def __init__(self, column: str, operator: str, value: Any, logical_operator: str = AND):
        super().__init__(column, operator, logical_operator)
        if not is_json_value(value):
            raise ConstraintParameterError(
                "Constraint value must be JSON-compatible",
                {"value": repr(value)}
            )
        self.value = value

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "ValuePredicate":
        return cls(
            _require(params, "column"),
            _require(params, "operator"),
            params.get("value"),
            params.get("logical_operator", AND)
        )

    def check(self, entity: Any, actor: Any = None) -> bool:
        return self.compare(read_attribute(entity, self.column), self.value)

    def data(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "params": {
                "column": self.column,
                "operator": self.operator,
                "value": self.value,
                "logical_operator": self.logical_operator,
            },
        }

    def equals(self, other: Any) -> bool:
        return (
            isinstance(other, ValuePredicate)
            and self.column == other.column
            and self.operator == other.operator
            and strict_equals(self.value, other.value)
            and self.logical_operator == other.logical_operator
        )


class ColumnPredicate(Predicate):
    """``target[column] <op> actor[other_column]``; false without an actor."""

    kind = "column"

    def __init__(self, column: str, operator: str, other_column: str, logical_operator: str = AND):
        if not isinstance(other_column, str):
            raise ConstraintParameterError(
                "Columns and operator must be strings",
                {"other_column": repr(other_column)}
            )
        super().__init__(column, operator, logical_operator)
        self.other_column = other_column

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "ColumnPredicate":
        return cls(
            _require(params, "column"),
            _require(params, "operator"),
            _require(params, "other_column"),
            params.get("logical_operator", AND)
        )

    def check(self, entity: Any, actor: Any = None) -> bool:
        if actor is None:
            return False
        return self.compare(read_attribute(entity, self.column), read_attribute(actor, self.other_column))

    def data(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "params": {
                "column": self.column,
                "operator": self.operator,
                "other_column": self.other_column,
                "logical_operator": self.logical_operator,
            },
        }

    def equals(self, other: Any) -> bool:
        return (
            isinstance(other, ColumnPredicate)
            and self.column == other.column
            and self.operator == other.operator
            and self.other_column == other.other_column
            and self.logical_operator == other.logical_operator
        )


class Group(ConstraintNode):
    """Ordered children; an empty group always passes."""

    kind = "group"

    def __init__(self, constraints: Iterable[ConstraintNode] = (), logical_operator: str = AND):
        super().__init__(logical_operator)
        self.constraints: List[ConstraintNode] = []
        for constraint in constraints:
            self.add(constraint)

    @classmethod
    def with_and(cls) -> "Group":
        return cls()

    @classmethod
    def with_or(cls) -> "Group":
        return cls(logical_operator=OR)

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "Group":
        children = params.get("constraints") or []
        if not isinstance(children, list):
            raise ConstraintParameterError("Group constraints must be a list")
        return cls(
            [constraint_from_dict(child) for child in children],
            params.get("logical_operator", AND)
        )

    def add(self, constraint: ConstraintNode) -> "Group":
        if not isinstance(constraint, ConstraintNode):
            raise ConstraintParameterError(
                "Group members must be constraints",
                {"member": repr(constraint)}
            )
        self.constraints.append(constraint)
        return self

    def check(self, entity: Any, actor: Any = None) -> bool:
        if not self.constraints:
            return True

        result = not self.constraints[0].is_or
        for constraint in self.constraints:
            if constraint.is_or:
                if not result:
                    result = constraint.check(entity, actor)
            elif result:
                result = constraint.check(entity, actor)
        return result

    def data(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "params": {
                "logical_operator": self.logical_operator,
                "constraints": [constraint.data() for constraint in self.constraints],
            },
        }

    def equals(self, other: Any) -> bool:
        if not isinstance(other, Group):
            return False
        if self.logical_operator != other.logical_operator:
            return False
        if len(self.constraints) != len(other.constraints):
            return False
        return all(mine.equals(theirs) for mine, theirs in zip(self.constraints, other.constraints))

    def __len__(self) -> int:
        return len(self.constraints)


Constraint = Union[ValuePredicate, ColumnPredicate, Group]

_KINDS = {
    ValuePredicate.kind: ValuePredicate,
    ColumnPredicate.kind: ColumnPredicate,
    Group.kind: Group,
}


def constraint_from_data(kind: str, params: Dict[str, Any]) -> Constraint:
    """Rebuild a node from its serialized kind and params."""
    node_class = _KINDS.get(kind)
    if node_class is None:
        raise ConstraintParameterError(f"Unknown constraint kind: {kind!r}", {"kind": repr(kind)})
    if not isinstance(params, Mapping):
        raise ConstraintParameterError("Constraint params must be a mapping", {"kind": kind})
    return node_class.from_params(params)


def constraint_from_dict(data: Optional[Mapping[str, Any]]) -> Constraint:
    if not isinstance(data, Mapping) or "kind" not in data:
        raise ConstraintParameterError("Serialized constraint must carry a kind")
    return constraint_from_data(data["kind"], data.get("params") or {})


def _require(params: Mapping[str, Any], name: str) -> Any:
    if name not in params:
        raise ConstraintParameterError(f"Missing constraint parameter: {name}", {"parameter": name})
    return params[name]
