"""Rule validation, run before a rule is stored or activated."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from ..core.errors import RuleActivationError
from .actions import ActionRegistry, is_blank
from .catalog import FieldCatalog, FieldDefinition
from .model import Action, ConditionNode, Group, Leaf, Rule
from .operators import (
    LIST_OPERATORS,
    PATTERN_OPERATORS,
    RANGE_OPERATORS,
    Uncomparable,
    compile_pattern,
    normalize,
    normalize_range,
)


class ErrorCode(str, Enum):
    UNKNOWN_FIELD = "unknown_field"
    ILLEGAL_OPERATOR = "illegal_operator"
    MISSING_VALUE = "missing_value"
    INVALID_VALUE = "invalid_value"
    EMPTY_GROUP = "empty_group"
    DUPLICATE_ID = "duplicate_id"
    UNKNOWN_ACTION_TYPE = "unknown_action_type"
    MISSING_PARAMETER = "missing_parameter"
    UNDECLARED_PARAMETER = "undeclared_parameter"
    INVALID_PARAMETER = "invalid_parameter"


@dataclass(frozen=True)
class ValidationError:
    """One problem found in a rule, addressed to the rule author."""
    code: ErrorCode
    message: str
    path: str                      # e.g. "root.children[1]" or "actions[0]"
    node_id: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "path": self.path,
            "nodeId": self.node_id,
        }


_KIND_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
}


class RuleValidator:
    """
    Checks a rule against the field catalog and the action registry.

    Validation is for authoring time. A rule with errors may be kept as a
    draft but ``activate`` refuses to enable it.
    """

    def __init__(self, catalog: FieldCatalog, registry: ActionRegistry):
        self.catalog = catalog
        self.registry = registry

    def validate(self, rule: Rule) -> list[ValidationError]:
        """Return every problem found; an empty list means the rule is valid."""
        errors: list[ValidationError] = []
        seen_ids: set[str] = set()
        self._validate_node(rule.root, "root", errors, seen_ids)

        action_ids: set[str] = set()
        for index, action in enumerate(rule.actions):
            path = f"actions[{index}]"
            if action.id in action_ids:
                errors.append(ValidationError(
                    ErrorCode.DUPLICATE_ID, f"Duplicate action id {action.id!r}", path, action.id
                ))
            action_ids.add(action.id)
            self._validate_action(action, path, errors)

        return errors

    def is_activatable(self, rule: Rule) -> bool:
        return not self.validate(rule)

    def activate(self, rule: Rule) -> Rule:
        """
        Return an enabled copy of ``rule``.

        Raises:
            RuleActivationError: carrying the validation errors, if any.
        """
        errors = self.validate(rule)
        if errors:
            raise RuleActivationError(rule.rule_id, errors)
        return replace(rule, enabled=True)

    def _validate_node(
        self,
        node: ConditionNode,
        path: str,
        errors: list[ValidationError],
        seen_ids: set[str],
    ) -> None:
        if node.id in seen_ids:
            errors.append(ValidationError(
                ErrorCode.DUPLICATE_ID, f"Duplicate condition id {node.id!r}", path, node.id
            ))
        seen_ids.add(node.id)

        if isinstance(node, Group):
            if not node.children:
                errors.append(ValidationError(
                    ErrorCode.EMPTY_GROUP,
                    f"{node.logical_operator.value} group has no conditions",
                    path,
                    node.id,
                ))
            for index, child in enumerate(node.children):
                self._validate_node(child, f"{path}.children[{index}]", errors, seen_ids)
            return

        self._validate_leaf(node, path, errors)

    def _validate_leaf(self, leaf: Leaf, path: str, errors: list[ValidationError]) -> None:
        definition = self.catalog.get(leaf.field)
        if definition is None:
            errors.append(ValidationError(
                ErrorCode.UNKNOWN_FIELD, f"Unknown field {leaf.field!r}", path, leaf.id
            ))
            return

        if leaf.operator not in definition.operators:
            errors.append(ValidationError(
                ErrorCode.ILLEGAL_OPERATOR,
                f"Operator {leaf.operator!r} is not allowed for {leaf.field} "
                f"(allowed: {', '.join(sorted(definition.operators))})",
                path,
                leaf.id,
            ))
            return

        problem = _check_value(definition, leaf.operator, leaf.value)
        if problem:
            code, message = problem
            errors.append(ValidationError(code, message, path, leaf.id))

    def _validate_action(self, action: Action, path: str, errors: list[ValidationError]) -> None:
        action_type = self.registry.get(action.type)
        if action_type is None:
            errors.append(ValidationError(
                ErrorCode.UNKNOWN_ACTION_TYPE,
                f"Unknown action type {action.type!r}",
                path,
                action.id,
            ))
            return

        for name in action_type.required_parameters:
            if is_blank(action.parameters.get(name)):
                errors.append(ValidationError(
                    ErrorCode.MISSING_PARAMETER,
                    f"Missing required parameter {name!r} for {action.type}",
                    f"{path}.parameters.{name}",
                    action.id,
                ))

        for name, value in action.parameters.items():
            spec = action_type.parameters.get(name)
            if spec is None:
                errors.append(ValidationError(
                    ErrorCode.UNDECLARED_PARAMETER,
                    f"Parameter {name!r} is not declared by {action.type}",
                    f"{path}.parameters.{name}",
                    action.id,
                ))
                continue
            if value is None:
                continue
            check = _KIND_CHECKS.get(spec.kind)
            if check is not None and not check(value):
                errors.append(ValidationError(
                    ErrorCode.INVALID_PARAMETER,
                    f"Parameter {name!r} must be a {spec.kind}",
                    f"{path}.parameters.{name}",
                    action.id,
                ))
            elif spec.choices and value not in spec.choices:
                errors.append(ValidationError(
                    ErrorCode.INVALID_PARAMETER,
                    f"Parameter {name!r} must be one of: "
                    f"{', '.join(str(c) for c in spec.choices)}",
                    f"{path}.parameters.{name}",
                    action.id,
                ))


def _check_value(definition: FieldDefinition, op_name: str, value: Any):
    """Return (code, message) for a bad leaf value, or None."""
    if op_name in RANGE_OPERATORS:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return ErrorCode.INVALID_VALUE, f"Operator {op_name!r} needs two values: [low, high]"
        for item in value:
            problem = _check_scalar(definition, item)
            if problem:
                return problem
        try:
            normalize_range(definition.type, value)
        except Uncomparable as e:
            return ErrorCode.INVALID_VALUE, f"Invalid range for {definition.path}: {e}"
        return None

    if op_name in PATTERN_OPERATORS:
        if is_blank(value):
            return ErrorCode.MISSING_VALUE, f"A pattern is required for {definition.path}"
        try:
            compile_pattern(value)
        except Uncomparable as e:
            return ErrorCode.INVALID_VALUE, str(e)
        return None

    if op_name in LIST_OPERATORS:
        if not isinstance(value, (list, tuple)):
            return ErrorCode.INVALID_VALUE, f"Operator {op_name!r} needs a list of values"
        if not value:
            return ErrorCode.MISSING_VALUE, f"Operator {op_name!r} needs at least one value"
        for item in value:
            problem = _check_scalar(definition, item)
            if problem:
                return problem
        return None

    if isinstance(value, (list, tuple)):
        return ErrorCode.INVALID_VALUE, f"Operator {op_name!r} takes a single value, not a list"
    return _check_scalar(definition, value)


def _check_scalar(definition: FieldDefinition, value: Any):
    if is_blank(value):
        if definition.nullable:
            return None
        return ErrorCode.MISSING_VALUE, f"A value is required for {definition.path}"

    if isinstance(value, dict):
        return ErrorCode.INVALID_VALUE, f"Value for {definition.path} must be a scalar"

    try:
        normalize(definition.type, value)
    except Uncomparable as e:
        return ErrorCode.INVALID_VALUE, f"Invalid {definition.type.value} for {definition.path}: {e}"

    options = definition.option_values
    if options and value not in options:
        return (
            ErrorCode.INVALID_VALUE,
            f"{value!r} is not an option of {definition.path} "
            f"(options: {', '.join(options)})",
        )
    return None
