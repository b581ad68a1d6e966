"""JSON wire format for rules.

The builder UI and the engine only exchange this form, so conversion must be
lossless: ``rule_from_dict(rule_to_dict(rule)) == rule`` for every rule.
"""

import json
from typing import Any

import jsonschema

from ..core.errors import RuleError
from .model import Action, ConditionNode, Group, Leaf, LogicalOperator, Rule


_SCALAR = {"type": ["string", "number", "boolean", "null"]}

RULE_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "definitions": {
        "leaf": {
            "type": "object",
            "required": ["id", "field", "operator"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "field": {"type": "string"},
                "operator": {"type": "string"},
                "value": {"anyOf": [_SCALAR, {"type": "array", "items": _SCALAR}]},
            },
            "not": {"required": ["logicalOperator"]},
        },
        "group": {
            "type": "object",
            "required": ["id", "logicalOperator", "children"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "logicalOperator": {"enum": ["AND", "OR"]},
                # Empty groups are structurally fine; the validator reports them
                "children": {"type": "array", "items": {"$ref": "#/definitions/node"}},
            },
        },
        "node": {
            "oneOf": [{"$ref": "#/definitions/leaf"}, {"$ref": "#/definitions/group"}],
        },
        "action": {
            "type": "object",
            "required": ["id", "type"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "type": {"type": "string"},
                "parameters": {"type": "object", "additionalProperties": _SCALAR},
            },
        },
    },
    "type": "object",
    "required": ["ruleId", "name", "root"],
    "properties": {
        "ruleId": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "description": {"type": "string"},
        "priority": {"type": "integer"},
        "enabled": {"type": "boolean"},
        "root": {"$ref": "#/definitions/node"},
        "actions": {"type": "array", "items": {"$ref": "#/definitions/action"}},
    },
}

_validator = jsonschema.Draft7Validator(RULE_SCHEMA)


def node_to_dict(node: ConditionNode) -> dict[str, Any]:
    """Convert a condition node to its wire form."""
    if isinstance(node, Group):
        return {
            "id": node.id,
            "logicalOperator": node.logical_operator.value,
            "children": [node_to_dict(child) for child in node.children],
        }
    value = list(node.value) if isinstance(node.value, tuple) else node.value
    return {
        "id": node.id,
        "field": node.field,
        "operator": node.operator,
        "value": value,
    }


def node_from_dict(data: dict[str, Any]) -> ConditionNode:
    """Build a condition node from an already schema-checked dict."""
    if "logicalOperator" in data:
        return Group(
            id=data["id"],
            logical_operator=LogicalOperator(data["logicalOperator"]),
            children=tuple(node_from_dict(child) for child in data["children"]),
        )
    return Leaf(
        id=data["id"],
        field=data["field"],
        operator=data["operator"],
        value=data.get("value"),
    )


def action_to_dict(action: Action) -> dict[str, Any]:
    return {
        "id": action.id,
        "type": action.type,
        "parameters": dict(action.parameters),
    }


def rule_to_dict(rule: Rule) -> dict[str, Any]:
    """Convert a rule to a JSON-compatible dict."""
    data = {
        "ruleId": rule.rule_id,
        "name": rule.name,
        "root": node_to_dict(rule.root),
        "actions": [action_to_dict(a) for a in rule.actions],
        "enabled": rule.enabled,
    }
    if rule.description:
        data["description"] = rule.description
    if rule.priority:
        data["priority"] = rule.priority
    return data


def rule_from_dict(data: Any) -> Rule:
    """
    Build a rule from its wire form.

    Raises:
        RuleError: if the document does not have the rule shape.
    """
    errors = sorted(_validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        location = "/".join(str(p) for p in first.absolute_path) or "<document>"
        rule_id = data.get("ruleId") if isinstance(data, dict) else None
        raise RuleError(
            f"Malformed rule document at {location}: {first.message}",
            rule_id=rule_id if isinstance(rule_id, str) else None,
        )

    return Rule(
        rule_id=data["ruleId"],
        name=data["name"],
        root=node_from_dict(data["root"]),
        actions=tuple(
            Action(
                id=a["id"],
                type=a["type"],
                parameters=dict(a.get("parameters", {})),
            )
            for a in data.get("actions", [])
        ),
        enabled=data.get("enabled", False),
        description=data.get("description", ""),
        priority=data.get("priority", 0),
    )


def dumps(rule: Rule, **kwargs) -> str:
    """Serialize a rule to JSON text."""
    return json.dumps(rule_to_dict(rule), **kwargs)


def loads(text: str) -> Rule:
    """Parse a rule from JSON text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RuleError(f"Invalid JSON: {e}")
    return rule_from_dict(data)
