"""
Tests for alert rules and the AlertEngine.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from core.config import AlertThresholds
from monitoring.alerts import (
    AlertEngine,
    AlertRule,
    HighResponseTimeRule,
    get_default_rules,
    summarize_alerts,
)
from monitoring.models import (
    AlertSeverity,
    AlertType,
    ApplicationMetrics,
    BusinessMetrics,
    CpuMetrics,
    DiskMetrics,
    InfrastructureMetrics,
    MemoryMetrics,
    MetricName,
    MetricSnapshot,
    PerformanceMetrics,
    RequestMetrics,
    RiskMetrics,
    SecurityMetrics,
)
from monitoring.sinks import Publisher
from monitoring.store import MetricStore
from risk_scoring.engine import RiskScorer


T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_snapshot(**groups) -> MetricSnapshot:
    return MetricSnapshot(timestamp=T0, **groups)


def with_performance(**kwargs) -> MetricSnapshot:
    return make_snapshot(application=ApplicationMetrics(performance=PerformanceMetrics(**kwargs)))


def types_of(alerts):
    return [a.alert_type for a in alerts]


@pytest.fixture
def engine():
    return AlertEngine()


# ============================================================
# RULES
# ============================================================

class TestRules:
    """Tests for individual rule thresholds."""

    def test_idle_snapshot_raises_nothing(self, engine):
        snapshot = make_snapshot(
            infrastructure=InfrastructureMetrics(
                cpu=CpuMetrics(usage=10.0),
                memory=MemoryMetrics(free_mb=4000.0, total_mb=8000.0, usage=50.0),
            ),
        )
        assert engine.evaluate(snapshot) == []

    def test_slow_responses_raise_one_warning(self, engine):
        alerts = engine.evaluate(with_performance(avg_response_time=600.0))

        assert types_of(alerts) == [AlertType.HIGH_RESPONSE_TIME]
        alert = alerts[0]
        assert alert.severity == AlertSeverity.WARNING
        assert alert.value == 600.0
        assert alert.threshold == 500.0
        assert alert.triggered_at == T0

    def test_response_time_at_threshold_is_fine(self, engine):
        assert engine.evaluate(with_performance(avg_response_time=500.0)) == []

    def test_low_apdex_is_critical(self, engine):
        alerts = engine.evaluate(with_performance(apdex=0.65))

        assert types_of(alerts) == [AlertType.LOW_APDEX]
        assert alerts[0].severity == AlertSeverity.CRITICAL

    def test_error_rate_needs_traffic(self, engine):
        no_traffic = make_snapshot(application=ApplicationMetrics(
            requests=RequestMetrics(total=0, success_rate=0.5),
        ))
        failing = make_snapshot(application=ApplicationMetrics(
            requests=RequestMetrics(total=100, errors=10, success_rate=0.9),
        ))

        assert engine.evaluate(no_traffic) == []
        assert types_of(engine.evaluate(failing)) == [AlertType.HIGH_ERROR_RATE]

    def test_low_memory_needs_reading(self, engine):
        unread = make_snapshot(infrastructure=InfrastructureMetrics(memory=MemoryMetrics()))
        low = make_snapshot(infrastructure=InfrastructureMetrics(
            memory=MemoryMetrics(free_mb=200.0, total_mb=8000.0),
        ))

        assert engine.evaluate(unread) == []
        assert types_of(engine.evaluate(low)) == [AlertType.LOW_MEMORY]

    def test_infrastructure_rules(self, engine):
        snapshot = make_snapshot(infrastructure=InfrastructureMetrics(
            cpu=CpuMetrics(usage=85.0),
            memory=MemoryMetrics(free_mb=4000.0, total_mb=8000.0),
            disk=DiskMetrics(usage=95.0),
        ))

        alerts = engine.evaluate(snapshot)

        assert types_of(alerts) == [AlertType.HIGH_CPU_USAGE, AlertType.DISK_SPACE_CRITICAL]
        assert [a.severity for a in alerts] == [AlertSeverity.WARNING, AlertSeverity.CRITICAL]

    def test_brute_force(self, engine):
        snapshot = make_snapshot(risk=RiskMetrics(security=SecurityMetrics(failed_auth_attempts=101)))
        assert types_of(engine.evaluate(snapshot)) == [AlertType.BRUTE_FORCE_DETECTED]

    def test_conversion_needs_active_users(self, engine):
        idle = make_snapshot(business=BusinessMetrics(active_users=0, conversion_rate=0.0))
        live = make_snapshot(business=BusinessMetrics(active_users=50, conversion_rate=0.005))

        assert engine.evaluate(idle) == []
        assert types_of(engine.evaluate(live)) == [AlertType.LOW_CONVERSION_RATE]

    def test_churn(self, engine):
        snapshot = make_snapshot(business=BusinessMetrics(churn_rate=0.2))
        assert types_of(engine.evaluate(snapshot)) == [AlertType.HIGH_CHURN_RATE]

    def test_risk_score_rule(self, engine):
        scorer = RiskScorer()
        risky = scorer.calculate({"dependency": 1.0}, assessed_at=T0)
        calm = scorer.calculate({"feature": 0.2}, assessed_at=T0)
        snapshot = make_snapshot()

        alerts = engine.evaluate(snapshot, risky)
        assert types_of(alerts) == [AlertType.HIGH_RISK_SCORE]
        assert "0.70" in alerts[0].message

        assert engine.evaluate(snapshot, calm) == []
        assert engine.evaluate(snapshot, None) == []

    def test_custom_thresholds(self):
        engine = AlertEngine(thresholds=AlertThresholds(response_time_ms=100.0))
        alerts = engine.evaluate(with_performance(avg_response_time=150.0))
        assert alerts[0].threshold == 100.0

    def test_evaluation_is_deterministic(self, engine):
        snapshot = with_performance(avg_response_time=900.0, apdex=0.5)
        assert engine.evaluate(snapshot) == engine.evaluate(snapshot)

    def test_default_rule_order(self):
        ids = [r.rule_id for r in get_default_rules()]
        assert ids[0] == "high_response_time"
        assert ids[-1] == "high_risk_score"
        assert len(ids) == 11


# ============================================================
# ENGINE
# ============================================================

class ExplodingRule(AlertRule):
    alert_type = AlertType.HIGH_CPU_USAGE
    severity = AlertSeverity.WARNING

    def extract(self, snapshot, assessment):
        raise ZeroDivisionError("bad metric")


class TestAlertEngine:
    """Tests for rule management and dispatch."""

    def test_raising_rule_is_skipped(self):
        engine = AlertEngine(rules=[ExplodingRule(1.0), HighResponseTimeRule(500.0)])
        alerts = engine.evaluate(with_performance(avg_response_time=600.0))
        assert types_of(alerts) == [AlertType.HIGH_RESPONSE_TIME]

    def test_disabled_rule(self, engine):
        engine.get_rule("high_response_time").enabled = False
        assert engine.evaluate(with_performance(avg_response_time=600.0)) == []

    def test_add_and_remove_rule(self):
        engine = AlertEngine(rules=[])
        engine.add_rule(HighResponseTimeRule(500.0))
        assert engine.get_rule("high_response_time") is not None
        assert engine.remove_rule("high_response_time")
        assert not engine.remove_rule("high_response_time")

    def test_with_thresholds_keeps_customisations(self, engine):
        engine.get_rule("low_apdex").enabled = False
        engine.remove_rule("high_churn_rate")
        engine.add_rule(ExplodingRule(1.0))

        retuned = engine.with_thresholds(AlertThresholds(response_time_ms=100.0))

        assert retuned.get_rule("high_response_time").threshold == 100.0
        assert retuned.get_rule("low_apdex").enabled is False
        assert retuned.get_rule("high_churn_rate") is None
        assert isinstance(retuned.get_rule("high_cpu_usage"), ExplodingRule)
        assert retuned.publisher is engine.publisher
        # The original engine is left alone
        assert engine.get_rule("high_response_time").threshold == 500.0

    @pytest.mark.asyncio
    async def test_notifier_failure_is_isolated(self):
        store = MetricStore()
        engine = AlertEngine(publisher=Publisher("alerts", store=store))
        broken = MagicMock(side_effect=ConnectionError("smtp down"))
        healthy = MagicMock()
        engine.add_notifier(broken)
        engine.add_notifier(healthy)

        alerts = await engine.process(with_performance(avg_response_time=600.0, apdex=0.5))

        assert len(alerts) == 2
        assert healthy.call_count == 2
        assert store.get(MetricName.SINK_ERRORS) == 2

    @pytest.mark.asyncio
    async def test_dispatch_counts_deliveries(self, engine):
        notifier = MagicMock()
        engine.add_notifier(notifier)
        alerts = engine.evaluate(with_performance(avg_response_time=600.0))

        assert await engine.dispatch(alerts) == 1
        notifier.assert_called_once_with(alerts[0])

    def test_summarize(self, engine):
        alerts = engine.evaluate(with_performance(avg_response_time=600.0, apdex=0.5))
        assert summarize_alerts(alerts) == {"total": 2, "critical": 1, "warning": 1}


class TestAlertRecord:
    """Tests for the Alert value."""

    def test_to_dict(self, engine):
        alert = engine.evaluate(with_performance(avg_response_time=600.0))[0]
        data = alert.to_dict()
        assert data["alert_type"] == "high_response_time"
        assert data["severity"] == "warning"
        assert data["triggered_at"] == T0.isoformat()
        assert data["alert_id"] == f"high_response_time_{int(T0.timestamp())}"

    def test_alert_is_immutable(self, engine):
        alert = engine.evaluate(with_performance(avg_response_time=600.0))[0]
        with pytest.raises(FrozenInstanceError):
            alert.message = "changed"
