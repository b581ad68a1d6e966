"""Action type registry and sequential action execution."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from .evaluator import MISSING, resolve_path
from .model import Action


logger = structlog.get_logger()

_TEMPLATE_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


class ActionStatus(str, Enum):
    """Outcome of one action."""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class ActionResult:
    """Result of an action execution."""
    action_id: str
    status: ActionStatus
    action_type: str = ""
    output: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ActionStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        data = {
            "actionId": self.action_id,
            "actionType": self.action_type,
            "status": self.status.value,
            "output": self.output,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


# Handlers receive the action's parameters and the evaluation context
ActionHandler = Callable[[dict[str, Any], Any], Awaitable[Any]]


@dataclass(frozen=True)
class ParameterSpec:
    """Declared parameter of an action type."""
    required: bool = False
    kind: str = "string"    # string, number, boolean or any
    choices: tuple[Any, ...] = ()

    def describe(self) -> dict[str, Any]:
        described: dict[str, Any] = {"required": self.required, "kind": self.kind}
        if self.choices:
            described["choices"] = list(self.choices)
        return described


@dataclass
class ActionType:
    """A named, parameterized side effect with its handler."""
    type: str
    handler: ActionHandler
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    templated: bool = False
    description: str = ""

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if spec.required]


def is_blank(value: Any) -> bool:
    """True for values that do not count as a supplied parameter."""
    return value is None or (isinstance(value, str) and not value.strip())


class ActionRegistry:
    """
    Registry for action types.

    Warehouse action types (send_notification, update_field, ...) are
    registered by the caller; the registry itself only ships the ``log``
    and ``noop`` built-ins.
    """

    def __init__(self):
        self._types: dict[str, ActionType] = {}
        self._register_builtin_actions()

    def register(
        self,
        action_type: str,
        handler: ActionHandler,
        parameters: Optional[dict[str, ParameterSpec]] = None,
        templated: bool = False,
        description: str = "",
    ) -> None:
        """Register an action type, replacing any previous registration."""
        self._types[action_type] = ActionType(
            type=action_type,
            handler=handler,
            parameters=dict(parameters or {}),
            templated=templated,
            description=description,
        )

    def unregister(self, action_type: str) -> None:
        """Unregister an action type."""
        self._types.pop(action_type, None)

    def get(self, action_type: str) -> Optional[ActionType]:
        """Get the registered action type, or None."""
        return self._types.get(action_type)

    def get_handler(self, action_type: str) -> Optional[ActionHandler]:
        """Get handler for action type."""
        registered = self._types.get(action_type)
        return registered.handler if registered else None

    def list_actions(self) -> list[str]:
        """List all registered action types."""
        return list(self._types.keys())

    def describe(self) -> list[dict[str, Any]]:
        """Action types and their parameter schemas, e.g. for a builder UI."""
        return [
            {
                "type": t.type,
                "description": t.description,
                "templated": t.templated,
                "parameters": {
                    name: spec.describe()
                    for name, spec in t.parameters.items()
                },
            }
            for t in self._types.values()
        ]

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._types

    def _register_builtin_actions(self) -> None:
        """Register built-in actions."""
        self.register(
            "log",
            self._action_log,
            parameters={
                "message": ParameterSpec(required=True),
                "level": ParameterSpec(),
            },
            templated=True,
            description="Write a message to the engine log",
        )
        self.register("noop", self._action_noop, description="Do nothing")

    async def _action_log(self, params: dict[str, Any], context: Any) -> dict[str, Any]:
        """Log a message (for debugging/audit)."""
        message = params.get("message", "")
        level = str(params.get("level") or "info").lower()
        if level not in ("debug", "info", "warning", "error"):
            level = "info"
        getattr(logger, level)("rule_log_action", message=message)
        return {"logged": True, "message": message, "level": level}

    async def _action_noop(self, params: dict[str, Any], context: Any) -> dict[str, Any]:
        """No operation - useful for testing."""
        return {"action": "noop"}


class ActionExecutor:
    """
    Runs an action list strictly in order.

    Every action is attempted: unknown types, missing parameters and
    handler exceptions become FAILED results and never abort the list.
    There is no retry and no timeout here; handlers own their I/O.
    """

    def __init__(self, registry: ActionRegistry):
        self.registry = registry

    async def execute(self, actions: Iterable[Action], context: Any) -> list[ActionResult]:
        """
        Execute actions sequentially.

        Args:
            actions: Ordered actions to run
            context: Evaluation context, passed to every handler

        Returns:
            One ActionResult per action, in the same order
        """
        results = []
        for action in actions:
            results.append(await self.execute_one(action, context))
        return results

    async def execute_one(self, action: Action, context: Any) -> ActionResult:
        """Execute a single action, capturing any failure in the result."""
        action_type = self.registry.get(action.type)
        if action_type is None:
            return self._failed(action, f"Unknown action type: {action.type}")

        missing = [
            name for name in action_type.required_parameters
            if is_blank(action.parameters.get(name))
        ]
        if missing:
            return self._failed(
                action, f"Missing required parameters: {', '.join(missing)}"
            )

        params = dict(action.parameters)
        if action_type.templated:
            params = self._interpolate_params(params, context)

        try:
            output = await action_type.handler(params, context)
        except Exception as e:
            return self._failed(action, str(e) or e.__class__.__name__)

        logger.debug("action_succeeded", action_id=action.id, action_type=action.type)
        return ActionResult(
            action_id=action.id,
            status=ActionStatus.SUCCEEDED,
            action_type=action.type,
            output=_as_output(output),
        )

    def _failed(self, action: Action, error: str) -> ActionResult:
        logger.warning(
            "action_failed",
            action_id=action.id,
            action_type=action.type,
            error=error,
        )
        return ActionResult(
            action_id=action.id,
            status=ActionStatus.FAILED,
            action_type=action.type,
            error=error,
        )

    def _interpolate_params(self, params: dict[str, Any], context: Any) -> dict[str, Any]:
        """Interpolate {{dotted.path}} references in params."""

        def replace_vars(value: Any) -> Any:
            if not isinstance(value, str):
                return value

            whole = _TEMPLATE_PATTERN.fullmatch(value.strip())
            if whole:
                resolved = resolve_path(context, whole.group(1))
                return value if resolved is MISSING or resolved is None else resolved

            def substitute(match: re.Match) -> str:
                resolved = resolve_path(context, match.group(1))
                if resolved is MISSING or resolved is None:
                    return match.group(0)
                return str(resolved)

            return _TEMPLATE_PATTERN.sub(substitute, value)

        return {k: replace_vars(v) for k, v in params.items()}


def _as_output(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    return {"result": value}
