"""
Monitoring - Service.

============================================================
PURPOSE
============================================================
Wires the monitoring core together and owns its lifecycle.

============================================================
ARCHITECTURE
============================================================

   request handlers ──► MetricStore
                            │
                            ▼
                    ┌───────────────┐
                    │   Collector   │  one task, fixed rate
                    └───────┬───────┘
                            │ MetricSnapshot
             ┌──────────────┼────────────────┐
             ▼              ▼                ▼
       persistence    AlertEngine   ScalingDecisionEngine
                            │                │
                            ▼                ▼
                       notifiers       scaling sinks

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from core.clock import ClockProtocol, get_clock
from core.config import ConfigHolder, MonitoringConfig
from risk_scoring.action import ActionRiskAssessor, UserProfile
from risk_scoring.engine import RiskScorer
from risk_scoring.types import ActionRiskAssessment
from scaling.engine import ScalingDecisionEngine
from scaling.types import ScalingDecision

from .alerts.engine import AlertEngine
from .collector import MetricsCollector
from .health_checks import HealthCheck, HealthChecker, SystemHealth
from .models import Alert, MetricSnapshot
from .sinks import (
    InMemorySnapshotRepository,
    LoggingAlertNotifier,
    LoggingScalingSink,
    PersistenceSink,
    Publisher,
    Sink,
    SnapshotRepository,
)
from .sources import SourceReader
from .store import MetricStore
from .tracking import RequestTracker


logger = logging.getLogger(__name__)


class MonitoringService:
    """
    Facade over store, collector, alert and scaling engines.

    Usage:
        service = MonitoringService(MonitoringConfig.load())
        service.add_alert_notifier(page_oncall)
        service.start()

        if service.assess_action("checkout", user).is_blocked:
            refuse()
        ...
        await service.stop()
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        store: Optional[MetricStore] = None,
        sources: Optional[SourceReader] = None,
        repository: Optional[SnapshotRepository] = None,
        clock: Optional[ClockProtocol] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        health_checks: Optional[List[HealthCheck]] = None,
    ):
        self._holder = ConfigHolder(config or MonitoringConfig())
        config = self._holder.get()

        self.store = store or MetricStore()
        self.clock = clock or get_clock()
        self.repository = repository or InMemorySnapshotRepository()

        timeout = config.collector.sink_timeout_seconds
        self.collector = MetricsCollector(
            self.store,
            config=config.collector,
            sources=sources,
            clock=self.clock,
            sleep=sleep,
        )
        self.alert_engine = AlertEngine(
            thresholds=config.alerts,
            publisher=Publisher("alerts", store=self.store, timeout_seconds=timeout),
        )
        self.scaling_publisher = Publisher("scaling", store=self.store, timeout_seconds=timeout)
        self.scaling_engine = ScalingDecisionEngine(config.scaling, RiskScorer(config.risk))

        self.tracker = RequestTracker(self.store, config.collector)
        self.action_assessor = ActionRiskAssessor(self.store, self.clock)
        self.health = HealthChecker(
            checks=health_checks,
            timeout_seconds=config.collector.source_timeout_seconds, clock=self.clock,
        )

        self.last_alerts: List[Alert] = []
        self.last_decision: Optional[ScalingDecision] = None

        self.collector.subscribe(PersistenceSink(self.repository, config.collector.retention))
        self.collector.add_processor(self.process_snapshot)

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------

    @property
    def config(self) -> MonitoringConfig:
        return self._holder.get()

    def apply_config(self, config: MonitoringConfig) -> None:
        """
        Swap in new thresholds. Takes effect from the next snapshot.

        Custom, disabled and removed alert rules survive the swap.
        The collection interval of a running loop is not changed.
        """
        self._holder.swap(config)
        self.alert_engine = self.alert_engine.with_thresholds(config.alerts)
        self.scaling_engine = ScalingDecisionEngine(config.scaling, RiskScorer(config.risk))

    # --------------------------------------------------------
    # Sinks
    # --------------------------------------------------------

    def add_snapshot_sink(self, sink: Sink) -> None:
        self.collector.subscribe(sink)

    def add_alert_notifier(self, notifier: Sink) -> None:
        self.alert_engine.add_notifier(notifier)

    def add_scaling_sink(self, sink: Sink) -> None:
        self.scaling_publisher.subscribe(sink)

    def add_logging_sinks(self) -> None:
        """Log alerts and scaling decisions, so a bare process has output."""
        self.add_alert_notifier(LoggingAlertNotifier())
        self.add_scaling_sink(LoggingScalingSink())

    # --------------------------------------------------------
    # Processing
    # --------------------------------------------------------

    async def process_snapshot(self, snapshot: MetricSnapshot) -> ScalingDecision:
        """
        Evaluate alerts and scaling for one snapshot and fan both out.

        Alert dispatch and the scaling publish run side by side, so a
        stuck notifier never holds back a scaling decision. Each sink
        is bounded by its own publisher timeout.
        """
        scaling_engine = self.scaling_engine
        alert_engine = self.alert_engine

        assessment = scaling_engine.assess_scaling_risks(snapshot)
        alerts = alert_engine.evaluate(snapshot, assessment)
        decision = scaling_engine.decide(snapshot, assessment)

        self.last_alerts = alerts
        self.last_decision = decision

        await asyncio.gather(
            alert_engine.dispatch(alerts),
            self.scaling_publisher.publish(decision),
        )
        return decision

    async def run_cycle(self) -> Optional[MetricSnapshot]:
        """One collection tick, published to every sink."""
        return await self.collector.tick()

    # --------------------------------------------------------
    # Caller-facing checks
    # --------------------------------------------------------

    async def check_health(self) -> SystemHealth:
        """Run every registered health check against the live system."""
        return await self.health.check_all()

    def assess_action(self, action: str, user: Optional[UserProfile] = None) -> ActionRiskAssessment:
        """
        Score one request action against the load seen by the last tick.

        Request handlers refuse the action when the result `is_blocked`.
        """
        return self.action_assessor.assess(action, user)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self, interval: Optional[float] = None) -> asyncio.Task:
        interval = interval if interval is not None else self.config.collector.interval_seconds
        logger.info(f"Starting monitoring service (interval={interval}s)")
        return self.collector.start(interval)

    async def stop(self, grace_period: Optional[float] = None) -> None:
        """Stop the loop within the grace period and release every sink."""
        grace = grace_period if grace_period is not None else self.config.collector.shutdown_grace_seconds
        await self.collector.stop(grace)
        self.alert_engine.publisher.clear()
        self.scaling_publisher.clear()
        logger.info("Monitoring service stopped")
