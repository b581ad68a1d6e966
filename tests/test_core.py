"""Tests for core components: config, errors, execution log."""

import json
import os
import pytest

# Add src to path
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from warehouse_rules.core.config import ConfigLoader, EngineConfig
from warehouse_rules.core.errors import (
    ActionError,
    ConfigError,
    ErrorCategory,
    ErrorSeverity,
    FrameworkError,
    RuleError,
    UnknownFieldError,
)
from warehouse_rules.core.state import ExecutionLogStore
from warehouse_rules.rules.actions import ActionResult, ActionStatus
from warehouse_rules.rules.catalog import FieldCatalog
from warehouse_rules.rules.engine import RuleExecutionResult
from warehouse_rules.rules.model import FieldType, Group, Leaf


class TestEngineConfig:
    """Test configuration defaults and environment overrides."""

    def test_default_config(self):
        """Test default configuration values."""
        config = EngineConfig()

        assert config.http.port == 8080
        assert config.execution_log.enabled is True
        assert config.execution_log.default_limit == 50
        assert config.catalog_path is None
        assert config.rules_directory == "./config/rules"

    def test_config_hash(self):
        """Same config gives the same hash; a change gives another."""
        assert EngineConfig().config_hash() == EngineConfig().config_hash()

        changed = EngineConfig(http={"port": 9000})
        assert changed.config_hash() != EngineConfig().config_hash()

    def test_env_overrides(self, monkeypatch, tmp_path):
        """PORT and DATA_DIR override file values."""
        monkeypatch.setenv("PORT", "9191")
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        monkeypatch.delenv("CATALOG_PATH", raising=False)

        base = EngineConfig()
        config = base.apply_env()

        assert config.http.port == 9191
        assert config.data_directory == str(tmp_path)
        assert config.execution_log.db_path == str(tmp_path / "executions.db")
        assert base.http.port == 8080

    def test_invalid_port_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "eighty")
        with pytest.raises(ConfigError):
            EngineConfig().apply_env()


class TestErrorFingerprinting:
    """Test error fingerprinting for deduplication."""

    def test_same_error_same_fingerprint(self):
        """Same rule and action give the same fingerprint."""
        error1 = ActionError("SMTP timeout", action_id="a1", action_type="send_notification")
        error2 = ActionError("Different text", action_id="a1", action_type="send_notification")

        assert error1.fingerprint() == error2.fingerprint()

    def test_different_context_different_fingerprint(self):
        error1 = RuleError("Bad rule", rule_id="r1")
        error2 = RuleError("Bad rule", rule_id="r2")

        assert error1.fingerprint() != error2.fingerprint()

    def test_error_serialization(self):
        """Test error to dict serialization."""
        error = UnknownFieldError("order.weight", rule_id="r1")
        data = error.to_dict()

        assert data["type"] == "UnknownFieldError"
        assert data["message"] == "Unknown field: order.weight"
        assert data["category"] == "validation"
        assert data["retryable"] is False
        assert data["context"] == {"rule_id": "r1", "field": "order.weight"}
        assert error.path == "order.weight"

    def test_error_hierarchy(self):
        """All engine errors share one base class."""
        config_error = ConfigError("missing", config_path="engine.yaml")

        assert isinstance(config_error, FrameworkError)
        assert isinstance(UnknownFieldError("x"), RuleError)
        assert config_error.severity is ErrorSeverity.HIGH
        assert config_error.category is ErrorCategory.PERMANENT
        assert ActionError("boom").category is ErrorCategory.EXTERNAL


class TestConfigLoader:
    """Test configuration, catalog and rule file loading."""

    @pytest.fixture
    def config_dir(self, tmp_path):
        """Create a config directory with sample files."""
        (tmp_path / "engine.yaml").write_text(
            "name: test-engine\n"
            "http:\n"
            "  port: 8181\n"
            "execution_log:\n"
            "  enabled: false\n"
        )
        (tmp_path / "catalog.yaml").write_text(
            "fields:\n"
            "  - path: order.status\n"
            "    type: enum\n"
            "    options:\n"
            "      - value: PENDING\n"
            "      - value: SHIPPED\n"
            "  - path: order.itemCount\n"
            "    type: number\n"
            "    operators: [gt, lt]\n"
        )

        rules_dir = tmp_path / "rules"
        rules_dir.mkdir()
        (rules_dir / "orders.yaml").write_text(
            "rules:\n"
            "  - ruleId: big-orders\n"
            "    name: Big orders\n"
            "    priority: 1\n"
            "    enabled: true\n"
            "    root:\n"
            "      id: c1\n"
            "      field: order.itemCount\n"
            "      operator: gt\n"
            "      value: 50\n"
        )
        (rules_dir / "stock.json").write_text(json.dumps({
            "ruleId": "low-stock",
            "name": "Low stock",
            "priority": 10,
            "root": {
                "id": "g1",
                "logicalOperator": "AND",
                "children": [
                    {"id": "c1", "field": "sku.quantity", "operator": "lt", "value": 5},
                ],
            },
            "actions": [{"id": "a1", "type": "add_tag", "parameters": {"tag": "restock"}}],
        }))
        return tmp_path

    def test_load_engine_config(self, config_dir):
        config = ConfigLoader(str(config_dir)).load_engine_config()

        assert config.name == "test-engine"
        assert config.http.port == 8181
        assert config.execution_log.enabled is False

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc:
            ConfigLoader(str(tmp_path)).load_engine_config()
        assert exc.value.context["config_path"].endswith("engine.yaml")

    def test_invalid_engine_config(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("http:\n  port: 0\n")
        with pytest.raises(ConfigError):
            ConfigLoader().load_engine_config(str(path))

    def test_load_catalog(self, config_dir):
        catalog = ConfigLoader().load_catalog(str(config_dir / "catalog.yaml"))

        assert isinstance(catalog, FieldCatalog)
        assert catalog.paths() == ["order.status", "order.itemCount"]
        assert catalog.get("order.status").type is FieldType.ENUM
        assert catalog.operators_for("order.itemCount") == frozenset({"gt", "lt"})

    def test_load_rules_yaml_and_json(self, config_dir):
        """Rules load from both formats, highest priority first."""
        rules = ConfigLoader(str(config_dir)).load_rules()

        assert [r.rule_id for r in rules] == ["low-stock", "big-orders"]
        assert isinstance(rules[0].root, Group)
        assert isinstance(rules[1].root, Leaf)
        assert rules[0].enabled is False
        assert rules[1].enabled is True

    def test_missing_rules_directory(self, tmp_path):
        assert ConfigLoader().load_rules(str(tmp_path / "nope")) == []

    def test_invalid_rule_file(self, tmp_path):
        """A malformed rule document is a config error naming the file."""
        (tmp_path / "broken.json").write_text(json.dumps({
            "ruleId": "broken",
            "name": "Broken",
            "root": {"id": "g1", "logicalOperator": "XOR", "children": []},
        }))
        with pytest.raises(ConfigError) as exc:
            ConfigLoader().load_rules(str(tmp_path))
        assert "broken.json" in exc.value.message

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("http: [unclosed\n")
        with pytest.raises(ConfigError):
            ConfigLoader().load_engine_config(str(path))


class TestExecutionLogStore:
    """Test the execution log."""

    @staticmethod
    def make_result(rule_id="r1"):
        return RuleExecutionResult(
            rule_id=rule_id,
            conditions_met=True,
            action_results=[
                ActionResult(action_id="a1", status=ActionStatus.FAILED,
                             action_type="send_notification", error="SMTP timeout"),
                ActionResult(action_id="a2", status=ActionStatus.SUCCEEDED,
                             action_type="add_tag", output={"tag": "urgent"}),
            ],
            duration_ms=3.5,
        )

    @pytest.mark.asyncio
    async def test_record_and_list(self, tmp_path):
        """Runs are listed newest first with per-action outcomes."""
        store = ExecutionLogStore(str(tmp_path / "nested" / "executions.db"))
        await store.initialize()
        try:
            first = await store.record(self.make_result())
            second = await store.record(self.make_result())
            await store.record(self.make_result("other"))

            records = await store.list_for_rule("r1")
            assert [r.id for r in records] == [second, first]
            assert records[0].conditions_met is True
            assert records[0].failed_action_ids == ["a1"]
            assert records[0].action_results[0]["error"] == "SMTP timeout"
            assert records[0].to_dict()["ruleId"] == "r1"

            assert len(await store.list_for_rule("r1", limit=1)) == 1
            assert await store.list_for_rule("missing") == []
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_requires_initialize(self, tmp_path):
        store = ExecutionLogStore(str(tmp_path / "executions.db"))
        with pytest.raises(FrameworkError):
            await store.list_for_rule("r1")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
