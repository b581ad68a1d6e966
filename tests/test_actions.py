"""Tests for action registry and execution."""

import asyncio
import pytest
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from warehouse_rules.core.errors import ActionError
from warehouse_rules.rules.actions import (
    ActionExecutor,
    ActionRegistry,
    ActionStatus,
    ParameterSpec,
)
from warehouse_rules.rules.model import Action
from warehouse_rules.rules.warehouse import WAREHOUSE_ACTIONS, register_warehouse_actions


class TestActionRegistry:
    """Test action registration."""

    @pytest.fixture
    def registry(self):
        return ActionRegistry()

    def test_builtin_actions(self, registry):
        """Test built-in action types are present."""
        assert "log" in registry.list_actions()
        assert "noop" in registry
        assert registry.get("log").required_parameters == ["message"]

    def test_register_and_unregister(self, registry):
        """Test custom action registration."""

        async def handler(params, context):
            return None

        registry.register("flag_order", handler, parameters={"reason": ParameterSpec(required=True)})
        assert registry.get_handler("flag_order") is handler
        assert registry.get("flag_order").required_parameters == ["reason"]

        registry.unregister("flag_order")
        assert registry.get("flag_order") is None
        assert "flag_order" not in registry

    def test_describe(self, registry):
        """Registry describes parameter schemas for the builder."""
        described = {d["type"]: d for d in registry.describe()}
        assert described["log"]["parameters"]["message"] == {"required": True, "kind": "string"}
        assert described["log"]["templated"] is True

    def test_warehouse_actions_registered(self, registry):
        """Warehouse action types carry the builder's parameter schemas."""
        register_warehouse_actions(registry)
        for action_type in WAREHOUSE_ACTIONS:
            assert action_type in registry
        assert registry.get("add_tag").required_parameters == ["tag"]
        assert set(registry.get("send_notification").required_parameters) == {
            "templateId", "recipients",
        }


class TestActionExecutor:
    """Test sequential, continue-on-error execution."""

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def registry(self, calls):
        registry = ActionRegistry()

        async def record(params, context):
            calls.append(params.get("name"))
            return {"name": params.get("name")}

        async def explode(params, context):
            calls.append("explode")
            raise RuntimeError("mail server down")

        registry.register("record", record, parameters={"name": ParameterSpec(required=True)})
        registry.register("explode", explode)
        return registry

    @pytest.fixture
    def executor(self, registry):
        return ActionExecutor(registry)

    @pytest.mark.asyncio
    async def test_failure_does_not_abort(self, executor, calls):
        """[fails, succeeds] runs both and reports both."""
        results = await executor.execute(
            [
                Action(id="a1", type="explode"),
                Action(id="a2", type="record", parameters={"name": "second"}),
            ],
            {},
        )

        assert len(results) == 2
        assert results[0].action_id == "a1"
        assert results[0].status is ActionStatus.FAILED
        assert results[0].error == "mail server down"
        assert results[1].status is ActionStatus.SUCCEEDED
        assert results[1].output == {"name": "second"}
        assert calls == ["explode", "second"]

    @pytest.mark.asyncio
    async def test_actions_run_in_order(self, executor, calls):
        """Each action completes before the next starts."""
        actions = [
            Action(id=f"a{i}", type="record", parameters={"name": str(i)})
            for i in range(5)
        ]
        results = await executor.execute(actions, {})
        assert calls == ["0", "1", "2", "3", "4"]
        assert [r.action_id for r in results] == ["a0", "a1", "a2", "a3", "a4"]

    @pytest.mark.asyncio
    async def test_sequential_with_slow_handler(self, calls):
        """A slow earlier action still finishes before a later one starts."""
        registry = ActionRegistry()

        async def slow(params, context):
            await asyncio.sleep(0.05)
            calls.append("slow")

        async def fast(params, context):
            calls.append("fast")

        registry.register("slow", slow)
        registry.register("fast", fast)

        await ActionExecutor(registry).execute(
            [Action(id="a1", type="slow"), Action(id="a2", type="fast")], {}
        )
        assert calls == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_unknown_action_type(self, executor, calls):
        """Unknown types fail without stopping the list."""
        results = await executor.execute(
            [
                Action(id="a1", type="nonexistent_action"),
                Action(id="a2", type="record", parameters={"name": "ok"}),
            ],
            {},
        )
        assert results[0].status is ActionStatus.FAILED
        assert "Unknown action type" in results[0].error
        assert results[1].succeeded
        assert calls == ["ok"]

    @pytest.mark.asyncio
    async def test_missing_required_parameter(self, executor, calls):
        """Handlers never see an action missing required parameters."""
        results = await executor.execute(
            [Action(id="a1", type="record", parameters={"name": "  "})], {}
        )
        assert results[0].status is ActionStatus.FAILED
        assert "name" in results[0].error
        assert calls == []

    @pytest.mark.asyncio
    async def test_action_error_captured(self):
        """ActionError from a handler becomes a failed result."""
        registry = ActionRegistry()

        async def reject(params, context):
            raise ActionError("SKU locked", action_id="a1", action_type="reject")

        registry.register("reject", reject)
        result = await ActionExecutor(registry).execute_one(Action(id="a1", type="reject"), {})
        assert result.status is ActionStatus.FAILED
        assert result.error == "SKU locked"
        assert result.to_dict()["status"] == "FAILED"

    @pytest.mark.asyncio
    async def test_handler_receives_context(self):
        """Handlers get parameters and the evaluation context."""
        registry = ActionRegistry()
        seen = {}

        async def capture(params, context):
            seen["params"] = params
            seen["context"] = context
            return "done"

        registry.register("capture", capture, parameters={"field": ParameterSpec()})
        context = {"order": {"id": "SO-1"}}
        result = await ActionExecutor(registry).execute_one(
            Action(id="a1", type="capture", parameters={"field": "status"}), context
        )

        assert seen == {"params": {"field": "status"}, "context": context}
        assert result.output == {"result": "done"}

    @pytest.mark.asyncio
    async def test_templating_only_when_declared(self):
        """{{path}} references resolve only for templated action types."""
        registry = ActionRegistry()
        register_warehouse_actions(registry)
        executor = ActionExecutor(registry)
        context = {"order": {"id": "SO-42", "itemCount": 7}}

        logged = await executor.execute_one(
            Action(id="a1", type="log", parameters={"message": "Order {{order.id}} has {{ order.itemCount }} items"}),
            context,
        )
        assert logged.output["message"] == "Order SO-42 has 7 items"

        tagged = await executor.execute_one(
            Action(id="a2", type="add_tag", parameters={"tag": "{{order.id}}"}),
            context,
        )
        assert tagged.output["tag"] == "{{order.id}}"

    @pytest.mark.asyncio
    async def test_whole_template_keeps_type(self):
        """A parameter that is exactly one reference takes the raw value."""
        registry = ActionRegistry()
        seen = {}

        async def capture(params, context):
            seen.update(params)

        registry.register("capture", capture, parameters={"count": ParameterSpec()}, templated=True)
        await ActionExecutor(registry).execute_one(
            Action(id="a1", type="capture", parameters={"count": "{{order.itemCount}}"}),
            {"order": {"itemCount": 7}},
        )
        assert seen["count"] == 7

    @pytest.mark.asyncio
    async def test_unresolved_template_left_as_is(self):
        """Missing references stay literal."""
        registry = ActionRegistry()
        result = await ActionExecutor(registry).execute_one(
            Action(id="a1", type="log", parameters={"message": "Hi {{user.name}}"}), {}
        )
        assert result.output["message"] == "Hi {{user.name}}"

    @pytest.mark.asyncio
    async def test_whole_template_resolving_to_none_kept(self):
        """A reference to a None value does not blank a required parameter."""
        registry = ActionRegistry()
        seen = {}

        async def capture(params, context):
            seen.update(params)

        registry.register(
            "capture", capture, parameters={"user": ParameterSpec(required=True)}, templated=True
        )
        result = await ActionExecutor(registry).execute_one(
            Action(id="a1", type="capture", parameters={"user": "{{order.assignee}}"}),
            {"order": {"assignee": None}},
        )
        assert result.succeeded
        assert seen["user"] == "{{order.assignee}}"

    @pytest.mark.asyncio
    async def test_custom_warehouse_handler(self):
        """Supplied handlers replace the recording default."""
        registry = ActionRegistry()
        sent = []

        async def send(params, context):
            sent.append(params["templateId"])
            return {"sent": True}

        register_warehouse_actions(registry, handlers={"send_notification": send})
        executor = ActionExecutor(registry)

        results = await executor.execute(
            [
                Action(id="a1", type="send_notification",
                       parameters={"templateId": "urgent_order", "recipients": "supervisor"}),
                Action(id="a2", type="update_field",
                       parameters={"field": "priority", "value": "URGENT"}),
            ],
            {},
        )

        assert sent == ["urgent_order"]
        assert results[0].output == {"sent": True}
        assert results[1].output == {"type": "update_field", "field": "priority", "value": "URGENT"}


class TestWarehouseActions:
    """Test the default recording handlers for warehouse action types."""

    @pytest.fixture
    def executor(self):
        registry = ActionRegistry()
        register_warehouse_actions(registry)
        return ActionExecutor(registry)

    @pytest.mark.asyncio
    async def test_set_priority(self, executor):
        """The priority field is assumed when none is given."""
        result = await executor.execute_one(
            Action(id="a1", type="set_priority", parameters={"value": "HIGH"}), {}
        )
        assert result.output == {"type": "set_priority", "field": "priority", "value": "HIGH"}

    @pytest.mark.asyncio
    async def test_assign_user_and_block_action(self, executor):
        results = await executor.execute(
            [
                Action(id="a1", type="assign_user",
                       parameters={"userId": "user-123", "role": "PICKER"}),
                Action(id="a2", type="block_action",
                       parameters={"reason": "Credit limit exceeded"}),
            ],
            {},
        )
        assert results[0].output == {"type": "assign_user", "userId": "user-123", "role": "PICKER"}
        assert results[1].output == {
            "type": "block_action", "blocked": True, "reason": "Credit limit exceeded",
        }

    @pytest.mark.asyncio
    async def test_modify_field_operations(self, executor):
        """add and multiply work from the field's current value."""
        context = {"order": {"totalValue": 100}}

        async def modify(**params):
            return await executor.execute_one(
                Action(id="a1", type="modify_field", parameters=params), context
            )

        plain = await modify(field="order.totalValue", value=100)
        added = await modify(field="order.totalValue", value=50, operation="add")
        multiplied = await modify(field="order.totalValue", value=2, operation="multiply")

        assert plain.output == {"type": "modify_field", "field": "order.totalValue", "value": 100}
        assert added.output["value"] == 150
        assert multiplied.output["value"] == 200

    @pytest.mark.asyncio
    async def test_modify_field_without_current_value_fails(self, executor):
        """Arithmetic on a missing or non-numeric field is a failed action."""
        missing = await executor.execute_one(
            Action(id="a1", type="modify_field",
                   parameters={"field": "order.totalValue", "value": 5, "operation": "add"}),
            {"order": {}},
        )
        assert missing.status is ActionStatus.FAILED
        assert "no current value" in missing.error

        text = await executor.execute_one(
            Action(id="a2", type="modify_field",
                   parameters={"field": "order.status", "value": 5, "operation": "add"}),
            {"order": {"status": "PICKED"}},
        )
        assert text.status is ActionStatus.FAILED

    def test_choices_described(self):
        registry = ActionRegistry()
        register_warehouse_actions(registry)
        described = {d["type"]: d for d in registry.describe()}
        assert described["modify_field"]["parameters"]["operation"] == {
            "required": False, "kind": "string", "choices": ["set", "add", "multiply"],
        }


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
