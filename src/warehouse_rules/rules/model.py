"""Rule data model: condition tree, actions and the rule aggregate.

A condition node is exactly one of two variants, ``Leaf`` or ``Group``.
Groups own their children as tuples, so a tree can never contain a cycle.
Every class here is a frozen value object: the engine reads rules, it never
changes them.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union


class FieldType(str, Enum):
    """Semantic type of a catalog field."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"


class LogicalOperator(str, Enum):
    """How a group combines its children."""
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Leaf:
    """Tests one field against one value via one operator."""
    id: str
    field: str
    operator: str
    value: Any = None

    def __post_init__(self):
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class Group:
    """Combines child nodes with AND/OR, in stored order."""
    id: str
    logical_operator: LogicalOperator
    children: tuple["ConditionNode", ...] = ()

    def __post_init__(self):
        # Accept lists from callers but always store an owned tuple
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))
        if not isinstance(self.logical_operator, LogicalOperator):
            object.__setattr__(
                self, "logical_operator", LogicalOperator(self.logical_operator)
            )


ConditionNode = Union[Leaf, Group]


@dataclass(frozen=True)
class Action:
    """A typed, parameterized side effect to run when a rule matches."""
    id: str
    type: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only view over a private copy
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def __hash__(self):
        return hash((self.id, self.type, frozenset(self.parameters.items())))


@dataclass(frozen=True)
class Rule:
    """A condition tree plus the ordered actions it guards."""
    rule_id: str
    name: str
    root: ConditionNode
    actions: tuple[Action, ...] = ()
    enabled: bool = False
    description: str = ""
    priority: int = 0

    def __post_init__(self):
        if not isinstance(self.actions, tuple):
            object.__setattr__(self, "actions", tuple(self.actions))
