"""Condition evaluation for rules engine."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from .catalog import FieldCatalog
from .model import ConditionNode, Group, Leaf, LogicalOperator
from .operators import Uncomparable, compare


logger = structlog.get_logger()

# Marker for a path that does not resolve in the context
MISSING = object()
_UNRESOLVED = object()


@dataclass
class NodeTrace:
    """Evaluation record for one node of a condition tree."""
    node_id: str
    kind: str                    # "leaf" or "group"
    result: bool = False
    evaluated: bool = True       # False when skipped by short-circuiting
    detail: dict[str, Any] = field(default_factory=dict)
    children: list["NodeTrace"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "kind": self.kind,
            "result": self.result,
            "evaluated": self.evaluated,
            **self.detail,
            "children": [c.to_dict() for c in self.children],
        }


def resolve_path(context: Any, path: str) -> Any:
    """
    Follow a dotted path through nested mappings or attributes.

    Returns MISSING if any segment is absent. ``None`` part-way down the
    path is also a miss.
    """
    current = context
    for part in path.split("."):
        if current is None:
            return MISSING

        if isinstance(current, Mapping):
            try:
                current = current[part]
            except KeyError:
                return MISSING
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return MISSING
            if not 0 <= index < len(current):
                return MISSING
            current = current[index]
        else:
            current = getattr(current, part, MISSING)
            if current is MISSING:
                return MISSING

    return current


class ConditionEvaluator:
    """
    Evaluates condition trees against a runtime context.

    Evaluation is pure: it reads the context and the catalog and nothing
    else. Anything "now"-dependent has to arrive through the context.

    Semantics:
    - A leaf whose path does not resolve, or resolves to None, is false
    - A value that cannot be normalized to the field type is false
    - Groups evaluate children in stored order and short-circuit
    - An empty group is false
    """

    def __init__(self, catalog: FieldCatalog):
        self.catalog = catalog

    def evaluate(self, node: ConditionNode, context: Any) -> bool:
        """Evaluate a condition tree. Never raises for business mismatches."""
        if isinstance(node, Leaf):
            return self._evaluate_leaf(node, context)

        if isinstance(node, Group):
            if not node.children:
                logger.warning("empty_group_evaluated", node_id=node.id)
                return False

            if node.logical_operator is LogicalOperator.AND:
                for child in node.children:
                    if not self.evaluate(child, context):
                        return False
                return True

            for child in node.children:
                if self.evaluate(child, context):
                    return True
            return False

        logger.warning("unknown_node_type", node_type=type(node).__name__)
        return False

    def explain(self, node: ConditionNode, context: Any) -> NodeTrace:
        """
        Evaluate a tree and record what happened at every node.

        Children skipped by short-circuiting appear with ``evaluated=False``.
        The root trace's ``result`` always equals ``evaluate(node, context)``.
        """
        if isinstance(node, Leaf):
            actual = resolve_path(context, node.field)
            return NodeTrace(
                node_id=node.id,
                kind="leaf",
                result=self._evaluate_leaf(node, context, actual),
                detail={
                    "field": node.field,
                    "operator": node.operator,
                    "expected": _plain(node.value),
                    "actual": None if actual is MISSING else _plain(actual),
                    "resolved": actual is not MISSING and actual is not None,
                },
            )

        if not isinstance(node, Group):
            return NodeTrace(node_id=getattr(node, "id", "?"), kind="unknown")

        trace = NodeTrace(
            node_id=node.id,
            kind="group",
            detail={"logicalOperator": node.logical_operator.value},
        )
        if not node.children:
            return trace

        stop_on = node.logical_operator is LogicalOperator.OR
        decided = False
        for child in node.children:
            if decided:
                trace.children.append(_skipped(child))
                continue
            child_trace = self.explain(child, context)
            trace.children.append(child_trace)
            if child_trace.result is stop_on:
                decided = True

        trace.result = decided if stop_on else not decided
        return trace

    def _evaluate_leaf(self, leaf: Leaf, context: Any, actual: Any = _UNRESOLVED) -> bool:
        """Evaluate a single leaf."""
        definition = self.catalog.get(leaf.field)
        if definition is None:
            logger.warning("unknown_field_evaluated", node_id=leaf.id, field=leaf.field)
            return False

        if leaf.operator not in definition.operators:
            logger.warning(
                "illegal_operator_evaluated",
                node_id=leaf.id,
                field=leaf.field,
                operator=leaf.operator,
            )
            return False

        if actual is _UNRESOLVED:
            actual = resolve_path(context, leaf.field)
        if actual is MISSING or actual is None:
            return False

        try:
            return compare(
                definition.type,
                leaf.operator,
                actual,
                leaf.value,
                case_sensitive=definition.case_sensitive,
            )
        except (Uncomparable, TypeError):
            return False


def _skipped(node: ConditionNode) -> NodeTrace:
    """Trace for a subtree that short-circuiting never reached."""
    if isinstance(node, Group):
        return NodeTrace(
            node_id=node.id,
            kind="group",
            evaluated=False,
            detail={"logicalOperator": node.logical_operator.value},
            children=[_skipped(c) for c in node.children],
        )
    return NodeTrace(
        node_id=node.id,
        kind="leaf",
        evaluated=False,
        detail={"field": node.field, "operator": node.operator, "expected": _plain(node.value)},
    )


def _plain(value: Any) -> Any:
    """Make a value JSON-friendly for traces."""
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, set, frozenset)):
        return [_plain(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    return str(value)
