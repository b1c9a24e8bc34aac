"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the monitoring core.

- Provides clear exception hierarchy
- Separates fatal configuration errors from transient runtime errors
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
MonitoringException (base)
├── ConfigurationError
│   ├── MissingConfigError
│   └── InvalidConfigError
├── MetricSourceError
├── CollectionError
├── SinkError
└── RiskScoringError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# BASE EXCEPTION
# ============================================================

class MonitoringException(Exception):
    """
    Base exception for all monitoring core errors.

    All exceptions carry:
    - severity: for logging and escalation
    - context: for debugging
    - recoverable: whether the loop may continue
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_recoverable: bool = True

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.recoverable = recoverable if recoverable is not None else self.default_recoverable
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_log_format(self) -> str:
        """Format exception for a single log line."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(MonitoringException):
    """Error in configuration. Fatal at startup."""

    default_severity = Severity.CRITICAL
    default_recoverable = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)
        self.config_key = config_key


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, key: str, source: str = "config"):
        super().__init__(
            message=f"Missing required configuration: {key}",
            config_key=key,
            context={"source": source},
        )


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )


# ============================================================
# RUNTIME ERRORS
# ============================================================

class MetricSourceError(MonitoringException):
    """An OS or infrastructure gauge could not be read."""

    default_severity = Severity.LOW

    def __init__(self, source: str, message: str, **kwargs):
        context = kwargs.pop("context", {})
        context["source"] = source
        super().__init__(f"Metric source '{source}' failed: {message}", context=context, **kwargs)
        self.source = source


class CollectionError(MonitoringException):
    """A collection tick failed."""

    default_severity = Severity.HIGH


class SinkError(MonitoringException):
    """A downstream sink raised or timed out."""

    def __init__(self, sink: str, message: str, **kwargs):
        context = kwargs.pop("context", {})
        context["sink"] = sink
        super().__init__(f"Sink '{sink}' failed: {message}", context=context, **kwargs)
        self.sink = sink


class RiskScoringError(MonitoringException):
    """Risk scoring received input it cannot score."""

    default_severity = Severity.HIGH
    default_recoverable = False
