"""
Monitoring - Metrics Collector.

============================================================
RESPONSIBILITY
============================================================
Reduces the metric store and infrastructure sources into one
immutable MetricSnapshot per tick and publishes it.

- Runs as a single background task
- Fixed-rate schedule, no drift, no catch-up bursts
- A failing tick is logged and counted; the loop continues

============================================================
SCHEDULE
============================================================
Tick k is due at start + k * interval on the monotonic clock.
If a tick overruns one or more slots, the missed slots are
skipped and the next tick runs at the next future slot.

============================================================
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, List, Optional

from core.clock import ClockProtocol, get_clock
from core.config import CollectorConfig
from core.exceptions import CollectionError

from . import statistics
from .models import (
    ApplicationMetrics,
    BusinessMetrics,
    CacheMetrics,
    DatabaseMetrics,
    DependencyMetrics,
    InfrastructureMetrics,
    JobMetrics,
    MetricName,
    MetricSnapshot,
    PerformanceMetrics,
    RequestMetrics,
    RiskMetrics,
    SecurityMetrics,
    StabilityMetrics,
)
from .sinks import Publisher, Sink, sink_name
from .sources import SourceReader
from .store import MetricStore, StoreSnapshot


logger = logging.getLogger(__name__)


Processor = Callable[[MetricSnapshot], Awaitable[Any]]


class MetricsCollector:
    """
    Periodic snapshot builder.

    Usage:
        collector = MetricsCollector(store)
        collector.subscribe(my_sink)
        collector.start()
        ...
        await collector.stop(grace_period=5.0)
    """

    def __init__(
        self,
        store: MetricStore,
        config: Optional[CollectorConfig] = None,
        sources: Optional[SourceReader] = None,
        clock: Optional[ClockProtocol] = None,
        publisher: Optional[Publisher] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._config = config or CollectorConfig()
        self._sources = sources or SourceReader(
            timeout_seconds=self._config.source_timeout_seconds,
            store=store,
        )
        self._clock = clock or get_clock()
        self._publisher = publisher or Publisher(
            "snapshots", store=store, timeout_seconds=self._config.sink_timeout_seconds,
        )
        self._sleep = sleep

        # Request-rate baseline from the previous tick
        self._last_total: Optional[int] = None
        self._last_tick_at: Optional[float] = None

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._current_tick: Optional[asyncio.Future] = None
        self._ticks_skipped = 0
        self._processors: List[Processor] = []

    # --------------------------------------------------------
    # Subscriptions
    # --------------------------------------------------------

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def ticks_skipped(self) -> int:
        return self._ticks_skipped

    def subscribe(self, sink: Sink) -> None:
        self._publisher.subscribe(sink)

    def unsubscribe(self, sink: Sink) -> bool:
        return self._publisher.unsubscribe(sink)

    def add_processor(self, processor: Processor) -> None:
        """
        Await `processor(snapshot)` after the sinks on every tick.

        Processors are not bound by the sink timeout; they own
        their fan-out and its timeouts.
        """
        if processor not in self._processors:
            self._processors.append(processor)

    # --------------------------------------------------------
    # Snapshot construction
    # --------------------------------------------------------

    def collect_once(self) -> MetricSnapshot:
        """
        Build one snapshot from the current store contents.

        On an unchanged store, consecutive calls produce snapshots
        that differ only in timestamp.
        """
        data = self._store.read_all()
        infrastructure = self._sources.read_infrastructure()

        snapshot = MetricSnapshot(
            timestamp=self._clock.now(),
            application=self._application(data),
            infrastructure=infrastructure,
            business=self._business(data),
            risk=self._risk(data),
        )

        # Request-time readers (e.g. action risk) use these gauges
        self._store.set(MetricName.SYSTEM_CPU_USAGE, infrastructure.cpu.usage)
        self._store.set(MetricName.SYSTEM_MEMORY_USAGE, infrastructure.memory.usage)

        return snapshot

    def _application(self, data: StoreSnapshot) -> ApplicationMetrics:
        total = int(data.counter(MetricName.REQUESTS_TOTAL))
        errors = int(data.counter(MetricName.REQUESTS_ERRORS))
        samples = data.sample_list(MetricName.RESPONSE_TIMES)

        requests = RequestMetrics(
            total=total,
            rate=self._request_rate(data, total),
            errors=errors,
            success_rate=statistics.success_rate(total, errors),
        )

        performance = PerformanceMetrics(
            avg_response_time=statistics.average(samples),
            p50_response_time=statistics.percentile(samples, 50),
            p95_response_time=statistics.percentile(samples, 95),
            p99_response_time=statistics.percentile(samples, 99),
            apdex=statistics.apdex(
                int(data.counter(MetricName.APDEX_SATISFIED)),
                int(data.counter(MetricName.APDEX_TOLERATING)),
                int(data.counter(MetricName.APDEX_TOTAL)),
            ),
        )

        hits = int(data.counter(MetricName.CACHE_HITS))
        misses = int(data.counter(MetricName.CACHE_MISSES))
        cache = CacheMetrics(
            hits=hits,
            misses=misses,
            evictions=int(data.counter(MetricName.CACHE_EVICTIONS)),
            hit_rate=statistics.cache_hit_rate(hits, misses),
        )

        active = int(data.gauge(MetricName.DB_ACTIVE_CONNECTIONS))
        pool_size = int(data.gauge(MetricName.DB_POOL_SIZE))
        database = DatabaseMetrics(
            active_connections=active,
            pool_size=pool_size,
            pool_usage=statistics.ratio_percent(active, pool_size),
            slow_queries=int(data.counter(MetricName.DB_SLOW_QUERIES)),
            deadlocks=int(data.counter(MetricName.DB_DEADLOCKS)),
        )

        jobs = JobMetrics(
            queued=int(data.gauge(MetricName.JOBS_QUEUED)),
            processing=int(data.gauge(MetricName.JOBS_PROCESSING)),
            failed=int(data.counter(MetricName.JOBS_FAILED)),
            retry_queue=int(data.gauge(MetricName.JOBS_RETRY)),
        )

        return ApplicationMetrics(
            requests=requests,
            performance=performance,
            cache=cache,
            database=database,
            background_jobs=jobs,
        )

    def _request_rate(self, data: StoreSnapshot, total: int) -> float:
        """
        Requests per second.

        A caller-set `requests.rate` gauge wins. Otherwise the counter
        delta since the previous tick over the elapsed monotonic time;
        the first tick only records the baseline.
        """
        now = self._clock.monotonic()
        previous_total, previous_at = self._last_total, self._last_tick_at
        self._last_total, self._last_tick_at = total, now

        if data.has_gauge(MetricName.REQUESTS_RATE):
            return float(data.gauge(MetricName.REQUESTS_RATE))
        if previous_total is None:
            return 0.0

        elapsed = now - previous_at
        if elapsed <= 0:
            return 0.0
        # A store reset makes the counter go backwards
        return max(0, total - previous_total) / elapsed

    def _business(self, data: StoreSnapshot) -> BusinessMetrics:
        return BusinessMetrics(
            active_users=int(data.gauge(MetricName.USERS_ACTIVE)),
            new_users=int(data.counter(MetricName.USERS_NEW)),
            churn_rate=float(data.gauge(MetricName.CHURN_RATE)),
            conversion_rate=float(data.gauge(MetricName.CONVERSION_RATE)),
            cart_abandonment=float(data.gauge(MetricName.CART_ABANDONMENT)),
            daily_revenue=float(data.gauge(MetricName.DAILY_REVENUE)),
        )

    def _risk(self, data: StoreSnapshot) -> RiskMetrics:
        return RiskMetrics(
            security=SecurityMetrics(
                failed_auth_attempts=int(data.counter(MetricName.AUTH_FAILED)),
                suspicious_requests=int(data.counter(MetricName.SUSPICIOUS_REQUESTS)),
                blocked_ips=int(data.gauge(MetricName.BLOCKED_IPS)),
            ),
            stability=StabilityMetrics(
                deployments=int(data.counter(MetricName.DEPLOYMENTS)),
                rollback_rate=float(data.gauge(MetricName.ROLLBACK_RATE)),
                mttr=float(data.gauge(MetricName.MTTR)),
                mtbf=float(data.gauge(MetricName.MTBF)),
            ),
            dependencies=DependencyMetrics(
                total=int(data.gauge(MetricName.DEPENDENCIES_TOTAL)),
                unhealthy=int(data.gauge(MetricName.DEPENDENCIES_UNHEALTHY)),
            ),
        )

    # --------------------------------------------------------
    # Loop
    # --------------------------------------------------------

    async def tick(self) -> Optional[MetricSnapshot]:
        """
        Collect and publish one snapshot.

        Never raises; failures are logged and counted in
        `monitoring.collector.tick_errors`.
        """
        snapshot = None
        try:
            # Source reads block up to their timeout; keep the loop free
            snapshot = await asyncio.to_thread(self.collect_once)
            self._store.increment(MetricName.COLLECTOR_TICKS)
            await self._publisher.publish(snapshot)
        except Exception as e:
            self._tick_failed(e, snapshot)
            return None

        for processor in list(self._processors):
            try:
                await processor(snapshot)
            except Exception as e:
                self._tick_failed(e, snapshot, stage=sink_name(processor))
        return snapshot

    def _tick_failed(self, e: Exception, snapshot: Optional[MetricSnapshot], stage: str = "collect") -> None:
        self._store.increment(MetricName.COLLECTOR_TICK_ERRORS)
        context = {"stage": stage}
        if snapshot is not None:
            context["snapshot"] = snapshot.to_dict()
        error = CollectionError(f"Collection tick failed: {e}", context=context, cause=e)
        logger.error(error.to_log_format(), exc_info=True)

    async def run(self, interval: Optional[float] = None) -> None:
        """Tick at a fixed rate until stopped."""
        interval = interval if interval is not None else self._config.interval_seconds
        if interval <= 0:
            raise ValueError("interval must be greater than 0")

        self._running = True
        if self._task is None:
            self._task = asyncio.current_task()

        start = self._clock.monotonic()
        k = 0
        logger.info(f"Metrics collector started (interval={interval}s)")

        try:
            while self._running:
                self._current_tick = asyncio.ensure_future(self.tick())
                await self._current_tick
                self._current_tick = None

                k += 1
                now = self._clock.monotonic()
                if now > start + k * interval:
                    due = math.floor((now - start) / interval) + 1
                    skipped = due - k
                    if skipped > 0:
                        self._ticks_skipped += skipped
                        logger.warning(f"Collection tick overran, skipping {skipped} slot(s)")
                    k = due

                if not self._running:
                    break
                await self._sleep(max(0.0, start + k * interval - now))
        finally:
            self._running = False
            logger.info("Metrics collector stopped")

    def start(self, interval: Optional[float] = None) -> asyncio.Task:
        """Schedule `run` as a background task."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run(interval))
        return self._task

    async def stop(self, grace_period: Optional[float] = None) -> None:
        """
        Stop scheduling, give the in-flight tick up to `grace_period`
        seconds to finish, then cancel. Releases all subscriptions.
        """
        grace = grace_period if grace_period is not None else self._config.shutdown_grace_seconds
        self._running = False

        current = self._current_tick
        if current is not None and not current.done():
            try:
                await asyncio.wait_for(asyncio.shield(current), timeout=grace)
            except asyncio.TimeoutError:
                logger.warning(f"In-flight tick did not finish within {grace}s, cancelling")

        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None

        self._publisher.clear()
        self._processors.clear()
        self._sources.shutdown()
