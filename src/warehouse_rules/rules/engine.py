"""Rules engine - evaluates condition trees and executes actions."""

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog

from ..core.state import ExecutionLogStore
from .actions import ActionExecutor, ActionRegistry, ActionResult
from .catalog import FieldCatalog
from .evaluator import ConditionEvaluator, NodeTrace
from .model import Rule


logger = structlog.get_logger()


@dataclass
class RuleExecutionResult:
    """Result of running one rule against one context."""
    rule_id: str
    conditions_met: bool
    action_results: list[ActionResult] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    duration_ms: float = 0

    @property
    def succeeded(self) -> list[str]:
        return [r.action_id for r in self.action_results if r.succeeded]

    @property
    def failed(self) -> list[str]:
        return [r.action_id for r in self.action_results if not r.succeeded]

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "conditionsMet": self.conditions_met,
            "skippedReason": self.skipped_reason,
            "durationMs": self.duration_ms,
            "actionResults": [r.to_dict() for r in self.action_results],
            "failedActionIds": self.failed,
        }


@dataclass
class RuleTestResult:
    """Dry-run outcome: what would happen, without side effects."""
    rule_id: str
    matched: bool
    trace: NodeTrace
    actions: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "matched": self.matched,
            "trace": self.trace.to_dict(),
            "actions": self.actions,
        }


class RulesEngine:
    """
    Runs rules: evaluate the condition tree, then execute the actions.

    Flow:
    1. Skip disabled rules
    2. Evaluate the root condition against the context
    3. On match, execute the action list in order (continue-on-error)
    4. Record the outcome in the execution log, if one is configured

    Deciding *when* to run a rule is the caller's job. Rules never see
    each other's state.
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        registry: Optional[ActionRegistry] = None,
        log_store: Optional[ExecutionLogStore] = None,
    ):
        self.catalog = catalog
        self.registry = registry or ActionRegistry()
        self.log_store = log_store

        # Components
        self.evaluator = ConditionEvaluator(catalog)
        self.executor = ActionExecutor(self.registry)

    def evaluate(self, rule: Rule, context: Any) -> bool:
        """Whether an enabled rule applies to the context."""
        if not rule.enabled:
            return False
        return self.evaluator.evaluate(rule.root, context)

    async def run(self, rule: Rule, context: Any) -> RuleExecutionResult:
        """
        Evaluate a rule and, on match, execute its actions.

        Action failures are reported in the result, never raised.
        """
        start_time = time.monotonic()

        if not rule.enabled:
            return RuleExecutionResult(
                rule_id=rule.rule_id,
                conditions_met=False,
                skipped_reason="disabled",
                duration_ms=(time.monotonic() - start_time) * 1000,
            )

        conditions_met = self.evaluator.evaluate(rule.root, context)
        logger.debug("rule_evaluated", rule_id=rule.rule_id, conditions_met=conditions_met)

        action_results: list[ActionResult] = []
        if conditions_met:
            action_results = await self.executor.execute(rule.actions, context)

        result = RuleExecutionResult(
            rule_id=rule.rule_id,
            conditions_met=conditions_met,
            action_results=action_results,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )

        if result.failed:
            logger.warning(
                "rule_actions_failed",
                rule_id=rule.rule_id,
                failed=result.failed,
                succeeded=result.succeeded,
            )
        elif conditions_met:
            logger.info(
                "rule_executed",
                rule_id=rule.rule_id,
                actions=len(action_results),
                duration_ms=round(result.duration_ms, 2),
            )

        if self.log_store is not None and conditions_met:
            await self.log_store.record(result)

        return result

    async def run_all(self, rules: Iterable[Rule], context: Any) -> list[RuleExecutionResult]:
        """
        Run every enabled rule against the same context.

        Rules run in priority order (higher first, ties keep input order).
        Disabled rules are left out of the results.
        """
        ordered = sorted(
            (r for r in rules if r.enabled),
            key=lambda r: r.priority,
            reverse=True,
        )
        results = []
        for rule in ordered:
            results.append(await self.run(rule, context))
        return results

    def dry_run(self, rule: Rule, context: Any) -> RuleTestResult:
        """
        Test a rule against sample data without executing anything.

        Works on drafts too: the enabled flag is ignored.
        """
        trace = self.evaluator.explain(rule.root, context)
        actions = []
        if trace.result:
            actions = [
                {
                    "actionId": action.id,
                    "type": action.type,
                    "parameters": dict(action.parameters),
                    "registered": action.type in self.registry,
                }
                for action in rule.actions
            ]
        return RuleTestResult(
            rule_id=rule.rule_id,
            matched=trace.result,
            trace=trace,
            actions=actions,
        )

    # ==================== Utility Methods ====================

    async def get_execution_log(self, rule_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Recent runs of a rule, empty when no log store is configured."""
        if self.log_store is None:
            return []
        records = await self.log_store.list_for_rule(rule_id, limit)
        return [r.to_dict() for r in records]
