"""
Alert Engine.

============================================================
RESPONSIBILITY
============================================================
Evaluates the rule list against a snapshot and hands the
resulting alerts to notification sinks.

- `evaluate` is pure: same snapshot, same alerts
- A rule that raises is logged and skipped
- A notifier that raises never affects other notifiers

============================================================
"""

import logging
from typing import Dict, List, Optional

from core.config import AlertThresholds
from risk_scoring.types import RiskAssessment

from ..models import Alert, AlertSeverity, MetricSnapshot
from ..sinks import Publisher, Sink
from .rules import AlertRule, get_default_rules


logger = logging.getLogger(__name__)


class AlertEngine:
    """
    Stateless rule evaluator plus notification fan-out.

    This is the central alert coordination point.
    """

    def __init__(
        self,
        rules: Optional[List[AlertRule]] = None,
        thresholds: Optional[AlertThresholds] = None,
        publisher: Optional[Publisher] = None,
    ):
        self._rules = rules if rules is not None else get_default_rules(thresholds)
        self._rules_by_id: Dict[str, AlertRule] = {r.rule_id: r for r in self._rules}
        self._publisher = publisher or Publisher("alerts")

    @property
    def rules(self) -> List[AlertRule]:
        return list(self._rules)

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        return self._rules_by_id.get(rule_id)

    def add_rule(self, rule: AlertRule) -> None:
        self._rules.append(rule)
        self._rules_by_id[rule.rule_id] = rule

    def remove_rule(self, rule_id: str) -> bool:
        rule = self._rules_by_id.pop(rule_id, None)
        if rule:
            self._rules.remove(rule)
            return True
        return False

    def with_thresholds(self, thresholds: AlertThresholds) -> "AlertEngine":
        """
        New engine with built-in rules retuned to `thresholds`.

        Built-in rules keep their enabled flag and position. Custom
        rules, and built-in ids taken over by a custom rule class,
        are carried over unchanged; removed rules stay removed. The
        notifier publisher is shared.
        """
        defaults = {rule.rule_id: rule for rule in get_default_rules(thresholds)}
        rules = []
        for rule in self._rules:
            fresh = defaults.get(rule.rule_id)
            if fresh is not None and type(fresh) is type(rule):
                fresh.enabled = rule.enabled
                rules.append(fresh)
            else:
                rules.append(rule)
        return AlertEngine(rules=rules, publisher=self._publisher)

    def add_notifier(self, notifier: Sink) -> None:
        self._publisher.subscribe(notifier)

    def remove_notifier(self, notifier: Sink) -> bool:
        return self._publisher.unsubscribe(notifier)

    def evaluate(
        self,
        snapshot: MetricSnapshot,
        assessment: Optional[RiskAssessment] = None,
    ) -> List[Alert]:
        """
        Evaluate all enabled rules against the snapshot.

        Returns triggered alerts in rule order; several may fire.
        """
        triggered = []

        for rule in self._rules:
            if not rule.enabled:
                continue

            try:
                alert = rule.evaluate(snapshot, assessment)
            except Exception as e:
                logger.error(f"Error evaluating rule {rule.rule_id}: {e}", exc_info=True)
                continue

            if alert:
                triggered.append(alert)
                logger.info(
                    f"Alert triggered: {alert.alert_type.title} "
                    f"[{alert.severity.value}] ({rule.rule_id})"
                )

        return triggered

    async def dispatch(self, alerts: List[Alert]) -> int:
        """Deliver each alert to every notifier; return successful deliveries."""
        delivered = 0
        for alert in alerts:
            delivered += await self._publisher.publish(alert)
        return delivered

    async def process(
        self,
        snapshot: MetricSnapshot,
        assessment: Optional[RiskAssessment] = None,
    ) -> List[Alert]:
        """Evaluate, then dispatch whatever fired."""
        alerts = self.evaluate(snapshot, assessment)
        if alerts:
            await self.dispatch(alerts)
        return alerts


def summarize_alerts(alerts: List[Alert]) -> Dict[str, int]:
    """Count alerts by severity."""
    return {
        "total": len(alerts),
        "critical": sum(1 for a in alerts if a.severity == AlertSeverity.CRITICAL),
        "warning": sum(1 for a in alerts if a.severity == AlertSeverity.WARNING),
    }
