"""
Main entry point for the rule engine service.

Loads configuration and the field catalog, wires the engine, and serves the
validation / rule-testing endpoints used by the rule builder.
"""

import asyncio
import json
import logging
import signal
import os
from typing import Optional

import structlog
from aiohttp import web
from dotenv import load_dotenv

from .core.config import ConfigLoader, EngineConfig
from .core.errors import FrameworkError, RuleError
from .core.state import ExecutionLogStore
from .rules.actions import ActionRegistry
from .rules.engine import RulesEngine
from .rules.serialization import rule_from_dict
from .rules.validator import RuleValidator
from .rules.warehouse import default_catalog, register_warehouse_actions


def configure_logging(log_format: Optional[str] = None) -> None:
    """Configure structured logging."""
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    logging.basicConfig(format="%(message)s", level=os.getenv("LOG_LEVEL", "INFO").upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()

ENGINE_KEY = web.AppKey("engine", RulesEngine)
VALIDATOR_KEY = web.AppKey("validator", RuleValidator)
CONFIG_KEY = web.AppKey("config", EngineConfig)


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


async def _read_json(request: web.Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(
            text=json.dumps({"success": False, "error": "Request body must be JSON"}),
            content_type="application/json",
        )


async def health_handler(request: web.Request) -> web.Response:
    """Basic health check - is the process alive."""
    return web.json_response({"status": "healthy"})


async def catalog_handler(request: web.Request) -> web.Response:
    """Fields and action types, for the rule builder."""
    engine = request.app[ENGINE_KEY]
    return web.json_response({
        "success": True,
        "data": {
            "fields": engine.catalog.to_list(),
            "actionTypes": engine.registry.describe(),
        },
    })


async def validate_handler(request: web.Request) -> web.Response:
    """Validate a rule document before it is saved or activated."""
    body = await _read_json(request)
    try:
        rule = rule_from_dict(body)
    except RuleError as e:
        return _error(e.message)

    errors = request.app[VALIDATOR_KEY].validate(rule)
    return web.json_response({
        "success": True,
        "data": {
            "valid": not errors,
            "errors": [e.to_dict() for e in errors],
        },
    })


async def test_rule_handler(request: web.Request) -> web.Response:
    """Dry-run a rule against sample data."""
    body = await _read_json(request)
    if not isinstance(body, dict) or "rule" not in body or "context" not in body:
        return _error("Missing required fields: rule, context")

    try:
        rule = rule_from_dict(body["rule"])
    except RuleError as e:
        return _error(e.message)

    result = request.app[ENGINE_KEY].dry_run(rule, body["context"])
    return web.json_response({"success": True, "data": result.to_dict()})


async def executions_handler(request: web.Request) -> web.Response:
    """Recent executions of a rule."""
    config = request.app[CONFIG_KEY]
    try:
        limit = int(request.query.get("limit", config.execution_log.default_limit))
    except ValueError:
        return _error("limit must be an integer")
    limit = max(1, min(limit, 1000))

    rule_id = request.match_info["rule_id"]
    entries = await request.app[ENGINE_KEY].get_execution_log(rule_id, limit)
    return web.json_response({"success": True, "data": entries})


def create_app(
    engine: RulesEngine,
    validator: RuleValidator,
    config: Optional[EngineConfig] = None,
) -> web.Application:
    """Build the HTTP application around an engine."""
    app = web.Application()
    app[ENGINE_KEY] = engine
    app[VALIDATOR_KEY] = validator
    app[CONFIG_KEY] = config or EngineConfig()

    app.router.add_get("/health", health_handler)
    app.router.add_get("/catalog", catalog_handler)
    app.router.add_post("/rules/validate", validate_handler)
    app.router.add_post("/rules/test", test_rule_handler)
    app.router.add_get("/rules/{rule_id}/executions", executions_handler)
    return app


class Application:
    """Main application container."""

    def __init__(self):
        self.config: Optional[EngineConfig] = None
        self.engine: Optional[RulesEngine] = None
        self.log_store: Optional[ExecutionLogStore] = None
        self._runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()

    def _load_config(self) -> EngineConfig:
        config_path = os.getenv("CONFIG_PATH", "./config/engine.yaml")
        if os.path.exists(config_path):
            config = ConfigLoader().load_engine_config(config_path)
        else:
            config = EngineConfig()
        return config.apply_env()

    async def start(self) -> None:
        """Start all components."""
        logger.info("application_starting")

        self.config = self._load_config()

        if self.config.catalog_path:
            catalog = ConfigLoader().load_catalog(self.config.catalog_path)
        else:
            catalog = default_catalog()

        registry = ActionRegistry()
        register_warehouse_actions(registry)

        if self.config.execution_log.enabled:
            self.log_store = ExecutionLogStore(self.config.execution_log.db_path)
            await self.log_store.initialize()

        self.engine = RulesEngine(catalog, registry, self.log_store)
        validator = RuleValidator(catalog, registry)
        self._check_rule_files(validator)

        app = create_app(self.engine, validator, self.config)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.http.host, self.config.http.port)
        await site.start()

        logger.info(
            "application_started",
            port=self.config.http.port,
            fields=len(catalog),
            action_types=registry.list_actions(),
        )

    def _check_rule_files(self, validator: RuleValidator) -> None:
        """Validate exported rule files so broken active rules show up at boot."""
        rules = ConfigLoader().load_rules(self.config.rules_directory)
        invalid = 0
        for rule in rules:
            errors = validator.validate(rule)
            if errors:
                invalid += 1
                logger.warning(
                    "rule_invalid",
                    rule_id=rule.rule_id,
                    enabled=rule.enabled,
                    errors=[str(e) for e in errors],
                )
        logger.info("rules_checked", total=len(rules), invalid=invalid)

    async def stop(self) -> None:
        """Stop all components."""
        logger.info("application_stopping")

        if self._runner:
            await self._runner.cleanup()
        if self.log_store:
            await self.log_store.close()

        logger.info("application_stopped")

    async def run(self) -> None:
        """Run until a shutdown signal arrives."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except NotImplementedError:
                # Windows
                pass

        await self.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()


def run() -> None:
    """Console entry point."""
    load_dotenv()
    configure_logging()
    try:
        asyncio.run(Application().run())
    except FrameworkError as e:
        logger.error("application_failed", **e.to_dict())
        raise SystemExit(1)


if __name__ == "__main__":
    run()
