"""Business rule engine: condition trees, evaluation and actions."""

from .model import Action, FieldType, Group, Leaf, LogicalOperator, Rule
from .catalog import FieldCatalog, FieldDefinition
from .evaluator import ConditionEvaluator
from .actions import ActionExecutor, ActionRegistry, ActionResult, ActionStatus, ParameterSpec
from .validator import RuleValidator, ValidationError
from .engine import RulesEngine

__all__ = [
    "Action",
    "FieldType",
    "Group",
    "Leaf",
    "LogicalOperator",
    "Rule",
    "FieldCatalog",
    "FieldDefinition",
    "ConditionEvaluator",
    "ActionExecutor",
    "ActionRegistry",
    "ActionResult",
    "ActionStatus",
    "ParameterSpec",
    "RuleValidator",
    "ValidationError",
    "RulesEngine",
]
