"""
Tests for the MonitoringService wiring.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from core.clock import MockClock
from core.config import MonitoringConfig
from monitoring.alerts import HighCpuUsageRule
from monitoring.health_checks import CallableCheck, HealthState
from monitoring.models import AlertType, CpuMetrics, MemoryMetrics, MetricName
from monitoring.service import MonitoringService
from monitoring.sources import CallableSource, SourceReader
from monitoring.store import MetricStore
from scaling import ScalingStrategy


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def fixed_sources(cpu: float = 10.0) -> SourceReader:
    return SourceReader([
        CallableSource("cpu", lambda: CpuMetrics(usage=cpu), CpuMetrics()),
        CallableSource(
            "memory",
            lambda: MemoryMetrics(used_mb=3200.0, free_mb=4800.0, total_mb=8000.0, usage=40.0),
            MemoryMetrics(),
        ),
    ])


@pytest.fixture
def store():
    return MetricStore()


@pytest.fixture
def service(store):
    return MonitoringService(store=store, sources=fixed_sources(), clock=MockClock(T0))


def slow_traffic(store, ms=600.0, n=5):
    for _ in range(n):
        store.record_sample(MetricName.RESPONSE_TIMES, ms)


class StrictCpuRule(HighCpuUsageRule):
    """Site-specific replacement for the built-in CPU rule."""


class TestMonitoringService:
    """Tests for one end-to-end cycle."""

    @pytest.mark.asyncio
    async def test_cycle_feeds_every_sink(self, service, store):
        notifier = MagicMock()
        scaling_sink = MagicMock()
        snapshot_sink = MagicMock()
        service.add_alert_notifier(notifier)
        service.add_scaling_sink(scaling_sink)
        service.add_snapshot_sink(snapshot_sink)
        slow_traffic(store)
        store.set(MetricName.DEPENDENCIES_TOTAL, 3)
        store.set(MetricName.DEPENDENCIES_UNHEALTHY, 1)

        snapshot = await service.run_cycle()

        assert snapshot is not None
        snapshot_sink.assert_called_once_with(snapshot)
        assert len(service.repository) == 1

        fired = {call.args[0].alert_type for call in notifier.call_args_list}
        assert fired == {AlertType.HIGH_RESPONSE_TIME, AlertType.HIGH_RISK_SCORE}

        decision = scaling_sink.call_args.args[0]
        assert decision is service.last_decision
        # Slow responses plus an unhealthy dependency are two highs;
        # no cache lookups yet, so the hit rate reads 0
        assert decision.strategy == ScalingStrategy.CACHE_OPTIMIZATION
        assert decision.decided_at == snapshot.timestamp

        await service.stop()

    @pytest.mark.asyncio
    async def test_quiet_cycle(self, service):
        scaling_sink = MagicMock()
        service.add_scaling_sink(scaling_sink)

        await service.run_cycle()

        assert service.last_alerts == []
        assert scaling_sink.call_args.args[0].strategy == ScalingStrategy.NONE

        await service.stop()

    @pytest.mark.asyncio
    async def test_apply_config_takes_effect_next_snapshot(self, service, store):
        notifier = MagicMock()
        service.add_alert_notifier(notifier)
        slow_traffic(store)

        service.apply_config(MonitoringConfig.from_dict({"alerts": {"response_time_ms": 1000}}))
        await service.run_cycle()

        assert service.config.alerts.response_time_ms == 1000.0
        assert AlertType.HIGH_RESPONSE_TIME not in [a.alert_type for a in service.last_alerts]
        # Notifiers survive the swap
        assert notifier.called

        await service.stop()

    @pytest.mark.asyncio
    async def test_stop_releases_sinks(self, service):
        service.add_alert_notifier(MagicMock())
        service.add_scaling_sink(MagicMock())

        await service.stop()

        assert service.alert_engine.publisher.sinks == []
        assert service.scaling_publisher.sinks == []
        assert service.collector.publisher.sinks == []

    @pytest.mark.asyncio
    async def test_hung_notifier_does_not_block_scaling(self, store):
        config = MonitoringConfig.from_dict({"collector": {"sink_timeout_seconds": 0.2}})
        service = MonitoringService(config, store=store, sources=fixed_sources(cpu=95.0), clock=MockClock(T0))

        async def hung_notifier(alert):
            await asyncio.sleep(10)

        got = []
        service.add_alert_notifier(hung_notifier)
        service.add_scaling_sink(got.append)

        snapshot = await asyncio.wait_for(service.run_cycle(), timeout=5)

        assert snapshot is not None
        assert AlertType.HIGH_CPU_USAGE in [a.alert_type for a in service.last_alerts]
        assert got == [service.last_decision]
        assert store.get(MetricName.SINK_ERRORS) == 1
        assert store.get(MetricName.COLLECTOR_TICK_ERRORS) == 0

        await service.stop()

    @pytest.mark.asyncio
    async def test_apply_config_keeps_rule_customisations(self, service, store):
        service.alert_engine.get_rule("high_response_time").enabled = False
        service.alert_engine.remove_rule("high_cpu_usage")
        service.alert_engine.add_rule(StrictCpuRule(5.0))
        slow_traffic(store)

        service.apply_config(MonitoringConfig.from_dict({"alerts": {"apdex": 0.5}}))
        await service.run_cycle()

        fired = {a.alert_type: a for a in service.last_alerts}
        assert AlertType.HIGH_RESPONSE_TIME not in fired
        assert fired[AlertType.HIGH_CPU_USAGE].threshold == 5.0
        assert service.alert_engine.get_rule("low_apdex").threshold == 0.5

        await service.stop()


class TestCallerFacingChecks:
    """Tests for health and per-action risk on the service."""

    @pytest.mark.asyncio
    async def test_check_health_runs_registered_checks(self, store):
        service = MonitoringService(
            store=store,
            sources=fixed_sources(),
            clock=MockClock(T0),
            health_checks=[CallableCheck("database", lambda: False)],
        )

        health = await service.check_health()

        assert health.overall_state == HealthState.UNHEALTHY
        assert health.last_check == T0

    @pytest.mark.asyncio
    async def test_action_risk_follows_collected_load(self, store):
        service = MonitoringService(store=store, sources=fixed_sources(cpu=95.0), clock=MockClock(T0))

        assert not service.assess_action("show").is_blocked

        await service.run_cycle()

        assessment = service.assess_action("show")
        assert assessment.factors["system_load"] == 0.9
        assert assessment.is_blocked
        assert assessment.assessed_at == T0

        await service.stop()
