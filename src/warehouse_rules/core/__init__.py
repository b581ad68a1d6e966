"""Core engine components."""

from .config import ConfigLoader, EngineConfig
from .state import ExecutionLogStore
from .errors import (
    FrameworkError,
    ConfigError,
    RuleError,
    UnknownFieldError,
    RuleActivationError,
    ActionError,
)

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "ExecutionLogStore",
    "FrameworkError",
    "ConfigError",
    "RuleError",
    "UnknownFieldError",
    "RuleActivationError",
    "ActionError",
]
