"""Rule engine error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification."""
    LOW = "low"           # Informational, author can fix at leisure
    MEDIUM = "medium"     # Rule or action misbehaved
    HIGH = "high"         # Engine cannot start or load configuration
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    TRANSIENT = "transient"       # Network, timeout - will likely resolve
    PERMANENT = "permanent"       # Config error, bad catalog - won't resolve
    EXTERNAL = "external"         # Action handler / third-party failure
    VALIDATION = "validation"     # Rule document or value validation failure


class FrameworkError(Exception):
    """Base exception for all rule engine errors."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def fingerprint(self) -> str:
        """Generate error fingerprint for deduplication."""
        import hashlib
        components = [
            self.__class__.__name__,
            self.category.value,
            str(self.context.get("rule_id", "")),
            str(self.context.get("action_id", "")),
        ]
        return hashlib.sha256(":".join(components).encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
            "fingerprint": self.fingerprint(),
        }


class ConfigError(FrameworkError):
    """Configuration or field catalog loading error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class RuleError(FrameworkError):
    """Rule document parsing or activation error."""

    def __init__(self, message: str, rule_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.MEDIUM)
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["rule_id"] = rule_id


class UnknownFieldError(RuleError):
    """Field path is not present in the field catalog."""

    def __init__(self, path: str, **kwargs):
        super().__init__(f"Unknown field: {path}", **kwargs)
        self.path = path
        self.context["field"] = path


class RuleActivationError(RuleError):
    """Rule cannot be enabled because it failed validation."""

    def __init__(self, rule_id: str, errors: list[Any], **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.LOW)
        summary = "; ".join(str(e) for e in errors)
        super().__init__(
            f"Rule {rule_id} has {len(errors)} validation error(s): {summary}",
            rule_id=rule_id,
            **kwargs
        )
        self.errors = list(errors)


class ActionError(FrameworkError):
    """Action handler failure.

    Handlers may raise this to report a failure with structured context; the
    executor records it as a failed action result.
    """

    def __init__(
        self,
        message: str,
        action_id: Optional[str] = None,
        action_type: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXTERNAL)
        super().__init__(message, **kwargs)
        self.context["action_id"] = action_id
        self.context["action_type"] = action_type
