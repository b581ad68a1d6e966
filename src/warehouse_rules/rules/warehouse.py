"""Warehouse field catalog and action types offered by the rule builder."""

from typing import Any, Callable, Optional

import structlog

from ..core.errors import ActionError
from .actions import ActionHandler, ActionRegistry, ParameterSpec
from .catalog import FieldCatalog
from .evaluator import MISSING, resolve_path
from .operators import Uncomparable, normalize_number


logger = structlog.get_logger()


def _options(*values: str) -> list[dict[str, str]]:
    return [{"value": v, "label": v.replace("_", " ").title()} for v in values]


DEFAULT_FIELDS: list[dict[str, Any]] = [
    {
        "path": "order.status",
        "label": "Order Status",
        "type": "enum",
        "options": _options("PENDING", "PICKING", "PICKED", "PACKING", "SHIPPED"),
        "operators": ["eq", "ne", "in"],
    },
    {
        "path": "order.priority",
        "label": "Order Priority",
        "type": "enum",
        "options": _options("LOW", "NORMAL", "HIGH", "URGENT"),
        "operators": ["eq", "ne", "in"],
    },
    {
        "path": "order.itemCount",
        "label": "Item Count",
        "type": "number",
        "operators": ["eq", "ne", "gt", "gte", "lt", "lte"],
    },
    {
        "path": "order.totalValue",
        "label": "Order Total Value",
        "type": "number",
        "operators": ["eq", "ne", "gt", "gte"],
    },
    {
        "path": "order.customerName",
        "label": "Customer Name",
        "type": "string",
        "case_sensitive": False,
        "operators": [
            "eq", "ne", "in", "not_in", "contains", "not_contains",
            "starts_with", "ends_with", "matches_regex",
        ],
    },
    {
        "path": "order.tags",
        "label": "Order Tags",
        "type": "string",
        "operators": ["contains", "not_contains"],
    },
    {
        "path": "order.createdAt",
        "label": "Order Created",
        "type": "date",
        "operators": ["eq", "ne", "gt", "gte", "lt", "lte", "between"],
    },
    {
        "path": "order.isExpedited",
        "label": "Expedited Shipping",
        "type": "boolean",
    },
    {
        "path": "sku.quantity",
        "label": "SKU Quantity",
        "type": "number",
        "operators": ["eq", "ne", "lt", "lte"],
    },
    {
        "path": "user.role",
        "label": "User Role",
        "type": "enum",
        "options": _options("PICKER", "PACKER", "STOCK_CONTROLLER", "ADMIN", "SUPERVISOR"),
        "operators": ["eq", "ne", "in"],
    },
]


def default_catalog() -> FieldCatalog:
    """Field catalog with the builder's default warehouse fields."""
    return FieldCatalog.from_dicts(DEFAULT_FIELDS)


# type -> (description, parameter schema, templated)
WAREHOUSE_ACTIONS: dict[str, tuple[str, dict[str, ParameterSpec], bool]] = {
    "send_notification": (
        "Send a notification to users",
        {
            "templateId": ParameterSpec(required=True),
            "recipients": ParameterSpec(required=True),
            "channels": ParameterSpec(),
        },
        True,
    ),
    "update_field": (
        "Update a field on the entity",
        {
            "field": ParameterSpec(required=True),
            "value": ParameterSpec(required=True),
        },
        False,
    ),
    "set_field": (
        "Set a field to a specific value",
        {
            "field": ParameterSpec(required=True),
            "value": ParameterSpec(required=True),
        },
        False,
    ),
    "add_tag": (
        "Add a tag to the entity",
        {"tag": ParameterSpec(required=True)},
        False,
    ),
    "set_priority": (
        "Change the entity's priority",
        {
            "field": ParameterSpec(),
            "value": ParameterSpec(required=True, choices=("LOW", "NORMAL", "HIGH", "URGENT")),
        },
        False,
    ),
    "assign_user": (
        "Assign the entity to a user",
        {
            "userId": ParameterSpec(required=True),
            "role": ParameterSpec(),
        },
        False,
    ),
    "block_action": (
        "Stop the triggering operation from completing",
        {"reason": ParameterSpec(required=True)},
        False,
    ),
    "modify_field": (
        "Set a field, or add to or multiply its current value",
        {
            "field": ParameterSpec(required=True),
            "value": ParameterSpec(required=True, kind="any"),
            "operation": ParameterSpec(choices=("set", "add", "multiply")),
        },
        False,
    ),
}


def _set_priority_effect(params: dict[str, Any], context: Any) -> dict[str, Any]:
    return {"field": params.get("field") or "priority", "value": params["value"]}


def _block_action_effect(params: dict[str, Any], context: Any) -> dict[str, Any]:
    return {"blocked": True, "reason": params["reason"]}


def _modify_field_effect(params: dict[str, Any], context: Any) -> dict[str, Any]:
    """Compute the new value; ``add`` and ``multiply`` read the current one."""
    field_path = params["field"]
    operation = params.get("operation") or "set"
    if operation == "set":
        return {"field": field_path, "value": params["value"]}

    current = resolve_path(context, field_path)
    if current is MISSING or current is None:
        raise ActionError(f"Field {field_path} has no current value to {operation}")
    try:
        current = normalize_number(current)
        amount = normalize_number(params["value"])
    except Uncomparable as e:
        raise ActionError(f"Cannot {operation} {field_path}: {e}")

    if operation == "add":
        value = current + amount
    elif operation == "multiply":
        value = current * amount
    else:
        raise ActionError(f"Unknown operation {operation!r} for {field_path}")
    return {"field": field_path, "value": value}


# Types whose intended effect is more than their parameters
_EFFECTS: dict[str, Callable[[dict[str, Any], Any], dict[str, Any]]] = {
    "set_priority": _set_priority_effect,
    "block_action": _block_action_effect,
    "modify_field": _modify_field_effect,
}


def _recording_handler(action_type: str) -> ActionHandler:
    """Handler that reports the intended effect without performing it."""
    effect = _EFFECTS.get(action_type)

    async def handler(params: dict[str, Any], context: Any) -> dict[str, Any]:
        output = effect(params, context) if effect else dict(params)
        logger.info("warehouse_action_recorded", action_type=action_type, effect=output)
        return {"type": action_type, **output}

    return handler


def register_warehouse_actions(
    registry: ActionRegistry,
    handlers: Optional[dict[str, ActionHandler]] = None,
    factory: Callable[[str], ActionHandler] = _recording_handler,
) -> None:
    """
    Declare the warehouse action types on a registry.

    Args:
        registry: Registry to populate
        handlers: Real handlers by action type
        factory: Builds a handler for any type missing from ``handlers``
    """
    handlers = handlers or {}
    for action_type, (description, parameters, templated) in WAREHOUSE_ACTIONS.items():
        registry.register(
            action_type,
            handlers.get(action_type) or factory(action_type),
            parameters=parameters,
            templated=templated,
            description=description,
        )
