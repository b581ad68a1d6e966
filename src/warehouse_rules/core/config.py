"""Configuration loading and validation."""

import os
import json
import hashlib
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from .errors import ConfigError, RuleError


class HttpConfig(BaseModel):
    """HTTP service configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)


class ExecutionLogConfig(BaseModel):
    """Rule execution log settings."""
    enabled: bool = Field(default=True)
    db_path: str = Field(default="./data/executions.db")
    default_limit: int = Field(default=50, ge=1, le=1000)


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="warehouse-rules")
    version: str = Field(default="0.1.0")

    http: HttpConfig = Field(default_factory=HttpConfig)
    execution_log: ExecutionLogConfig = Field(default_factory=ExecutionLogConfig)

    # Paths; a missing catalog_path means the built-in warehouse catalog
    catalog_path: Optional[str] = Field(default=None)
    rules_directory: str = Field(default="./config/rules")
    data_directory: str = Field(default="./data")

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]

    def apply_env(self) -> "EngineConfig":
        """Return a copy with environment overrides applied."""
        updates: dict[str, Any] = {}
        if os.getenv("DATA_DIR"):
            data_dir = os.environ["DATA_DIR"]
            updates["data_directory"] = data_dir
            updates["execution_log"] = self.execution_log.model_copy(
                update={"db_path": str(Path(data_dir) / "executions.db")}
            )
        if os.getenv("CATALOG_PATH"):
            updates["catalog_path"] = os.environ["CATALOG_PATH"]
        if os.getenv("PORT"):
            try:
                port = int(os.environ["PORT"])
            except ValueError:
                raise ConfigError(f"Invalid PORT: {os.environ['PORT']}")
            updates["http"] = self.http.model_copy(update={"port": port})
        return self.model_copy(update=updates) if updates else self


class ConfigLoader:
    """Loads and validates YAML/JSON configurations."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """Load main engine configuration."""
        if path is None:
            path = self.config_dir / "engine.yaml"
        else:
            path = Path(path)

        data = self._load_file(path)
        try:
            return EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path))

    def load_catalog(self, path: str):
        """
        Load a field catalog file.

        The file is either a list of field definitions or a mapping with a
        ``fields`` list.
        """
        from ..rules.catalog import FieldCatalog

        path = Path(path)
        data = self._load_file(path)
        items = data.get("fields", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ConfigError("Catalog must be a list of fields", config_path=str(path))
        return FieldCatalog.from_dicts(items, source=str(path))

    def load_rules(self, directory: Optional[str] = None) -> list:
        """Load all rule documents from directory."""
        if directory is None:
            directory = self.config_dir / "rules"
        else:
            directory = Path(directory)

        rules = []
        if not directory.exists():
            return rules

        for file_path in sorted(directory.glob("**/*.yaml")):
            rules.extend(self._load_rules_file(file_path))
        for file_path in sorted(directory.glob("**/*.json")):
            rules.extend(self._load_rules_file(file_path))

        # Sort by priority (higher first)
        rules.sort(key=lambda r: r.priority, reverse=True)
        return rules

    def _load_file(self, path: Path) -> Any:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()

            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                return json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

    def _load_rules_file(self, path: Path) -> list:
        """Load rules from a single file."""
        from ..rules.serialization import rule_from_dict

        data = self._load_file(path)

        # Support a single rule, a "rules:" mapping, or a bare list
        if isinstance(data, list):
            rule_list = data
        else:
            rule_list = data.get("rules", [data] if "ruleId" in data else [])

        rules = []
        for rule_data in rule_list:
            try:
                rules.append(rule_from_dict(rule_data))
            except RuleError as e:
                raise ConfigError(
                    f"Invalid rule in {path.name}: {e.message}",
                    config_path=str(path)
                )
        return rules
