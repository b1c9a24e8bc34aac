"""
Alert Rules and Definitions.

============================================================
PURPOSE
============================================================
Deterministic alert rules with explicit triggers.

PRINCIPLES:
- All thresholds are explicit and configurable
- NO derived or predictive alerts
- Simple condition evaluation against one snapshot
- Rules are stateless; deduplication belongs to notifiers

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from core.config import AlertThresholds
from risk_scoring.types import RiskAssessment

from ..models import Alert, AlertSeverity, AlertType, MetricSnapshot


logger = logging.getLogger(__name__)


# ============================================================
# ALERT RULE BASE
# ============================================================

class AlertRule(ABC):
    """
    Base class for alert rules.

    A rule reads one value from the snapshot, compares it with its
    threshold, and returns an Alert when breached.

    All rules MUST be deterministic.
    """

    alert_type: AlertType
    severity: AlertSeverity
    #: "above", "at_or_above" or "below"
    direction: str = "above"
    unit: str = ""

    def __init__(self, threshold: float, enabled: bool = True):
        self.threshold = threshold
        self.enabled = enabled

    @property
    def rule_id(self) -> str:
        return self.alert_type.value

    @abstractmethod
    def extract(self, snapshot: MetricSnapshot, assessment: Optional[RiskAssessment]) -> Optional[float]:
        """
        Value to compare, or None when the rule does not apply
        (e.g. no traffic yet).
        """
        pass

    def breached(self, value: float) -> bool:
        if self.direction == "below":
            return value < self.threshold
        if self.direction == "at_or_above":
            return value >= self.threshold
        return value > self.threshold

    def evaluate(
        self,
        snapshot: MetricSnapshot,
        assessment: Optional[RiskAssessment] = None,
    ) -> Optional[Alert]:
        """Return an Alert if the rule fires for this snapshot."""
        value = self.extract(snapshot, assessment)
        if value is None or not self.breached(value):
            return None

        return Alert(
            alert_type=self.alert_type,
            severity=self.severity,
            triggered_at=snapshot.timestamp,
            snapshot=snapshot,
            message=self.describe(value),
            value=value,
            threshold=self.threshold,
        )

    def describe(self, value: float) -> str:
        comparison = "below" if self.direction == "below" else "above"
        return (
            f"{self.alert_type.title}: {value:g}{self.unit} is {comparison} "
            f"threshold {self.threshold:g}{self.unit}"
        )


# ============================================================
# APPLICATION RULES
# ============================================================

class HighResponseTimeRule(AlertRule):
    """Average response time above threshold."""

    alert_type = AlertType.HIGH_RESPONSE_TIME
    severity = AlertSeverity.WARNING
    unit = "ms"

    def extract(self, snapshot, assessment):
        return snapshot.application.performance.avg_response_time


class LowApdexRule(AlertRule):
    """User satisfaction below threshold."""

    alert_type = AlertType.LOW_APDEX
    severity = AlertSeverity.CRITICAL
    direction = "below"

    def extract(self, snapshot, assessment):
        return snapshot.application.performance.apdex


class HighErrorRateRule(AlertRule):
    """Success rate below threshold. Needs at least one request."""

    alert_type = AlertType.HIGH_ERROR_RATE
    severity = AlertSeverity.CRITICAL
    direction = "below"

    def extract(self, snapshot, assessment):
        requests = snapshot.application.requests
        if requests.total <= 0:
            return None
        return requests.success_rate


# ============================================================
# INFRASTRUCTURE RULES
# ============================================================

class HighCpuUsageRule(AlertRule):
    alert_type = AlertType.HIGH_CPU_USAGE
    severity = AlertSeverity.WARNING
    unit = "%"

    def extract(self, snapshot, assessment):
        return snapshot.infrastructure.cpu.usage


class LowMemoryRule(AlertRule):
    """Free memory below threshold. Skipped until total memory is known."""

    alert_type = AlertType.LOW_MEMORY
    severity = AlertSeverity.CRITICAL
    direction = "below"
    unit = "MB"

    def extract(self, snapshot, assessment):
        memory = snapshot.infrastructure.memory
        if memory.total_mb <= 0:
            return None
        return memory.free_mb


class DiskSpaceCriticalRule(AlertRule):
    alert_type = AlertType.DISK_SPACE_CRITICAL
    severity = AlertSeverity.CRITICAL
    unit = "%"

    def extract(self, snapshot, assessment):
        return snapshot.infrastructure.disk.usage


# ============================================================
# SECURITY / STABILITY RULES
# ============================================================

class BruteForceRule(AlertRule):
    alert_type = AlertType.BRUTE_FORCE_DETECTED
    severity = AlertSeverity.CRITICAL

    def extract(self, snapshot, assessment):
        return snapshot.risk.security.failed_auth_attempts


class HighRollbackRateRule(AlertRule):
    alert_type = AlertType.HIGH_ROLLBACK_RATE
    severity = AlertSeverity.WARNING

    def extract(self, snapshot, assessment):
        return snapshot.risk.stability.rollback_rate


# ============================================================
# BUSINESS RULES
# ============================================================

class LowConversionRateRule(AlertRule):
    """Conversion below threshold. Needs active users."""

    alert_type = AlertType.LOW_CONVERSION_RATE
    severity = AlertSeverity.WARNING
    direction = "below"

    def extract(self, snapshot, assessment):
        if snapshot.business.active_users <= 0:
            return None
        return snapshot.business.conversion_rate


class HighChurnRateRule(AlertRule):
    alert_type = AlertType.HIGH_CHURN_RATE
    severity = AlertSeverity.WARNING

    def extract(self, snapshot, assessment):
        return snapshot.business.churn_rate


# ============================================================
# RISK RULES
# ============================================================

class HighRiskScoreRule(AlertRule):
    """Composite risk score at or above threshold. Needs an assessment."""

    alert_type = AlertType.HIGH_RISK_SCORE
    severity = AlertSeverity.CRITICAL
    direction = "at_or_above"

    def extract(self, snapshot, assessment):
        if assessment is None:
            return None
        return assessment.score

    def describe(self, value: float) -> str:
        return f"Risk score {value:.2f} reached threshold {self.threshold:.2f}"


# ============================================================
# DEFAULT RULES
# ============================================================

def get_default_rules(thresholds: Optional[AlertThresholds] = None) -> List[AlertRule]:
    """Get the default rule set, in evaluation order."""
    t = thresholds or AlertThresholds()
    return [
        HighResponseTimeRule(t.response_time_ms),
        LowApdexRule(t.apdex),
        HighErrorRateRule(t.success_rate),
        HighCpuUsageRule(t.cpu_usage),
        LowMemoryRule(t.free_memory_mb),
        DiskSpaceCriticalRule(t.disk_usage),
        BruteForceRule(t.failed_auth_attempts),
        HighRollbackRateRule(t.rollback_rate),
        LowConversionRateRule(t.conversion_rate),
        HighChurnRateRule(t.churn_rate),
        HighRiskScoreRule(t.risk_score),
    ]
