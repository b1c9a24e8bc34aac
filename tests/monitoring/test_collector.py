"""
Tests for the MetricsCollector.

Snapshot reduction, request rate, error isolation and the
fixed-rate schedule. All time comes from a MockClock; the loop's
sleep is replaced by one that advances the clock.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from core.config import CollectorConfig
from monitoring.collector import MetricsCollector
from monitoring.models import CpuMetrics, MemoryMetrics, MetricName
from monitoring.sources import CallableSource, SourceReader
from monitoring.store import MetricStore


T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def fixed_sources(cpu: float = 10.0, memory: float = 40.0) -> SourceReader:
    return SourceReader([
        CallableSource("cpu", lambda: CpuMetrics(usage=cpu), CpuMetrics()),
        CallableSource(
            "memory",
            lambda: MemoryMetrics(used_mb=3200.0, free_mb=4800.0, total_mb=8000.0, usage=memory),
            MemoryMetrics(),
        ),
    ])


@pytest.fixture
def clock():
    return MockClock(T0)


@pytest.fixture
def store():
    return MetricStore()


@pytest.fixture
def collector(store, clock):
    collector = MetricsCollector(store, CollectorConfig(), sources=fixed_sources(), clock=clock)
    yield collector
    collector._sources.shutdown()


def clock_sleep(clock, sleeps, collector, stop_after):
    """Fake sleep that advances the clock and stops the loop after N sleeps."""
    async def sleep(delay):
        sleeps.append(delay)
        clock.advance(seconds=delay)
        if len(sleeps) >= stop_after:
            await collector.stop()
    return sleep


# ============================================================
# SNAPSHOT REDUCTION
# ============================================================

class TestCollectOnce:
    """Tests for building one snapshot."""

    def test_reduces_store(self, collector, store, clock):
        for ms in range(1, 101):
            store.increment(MetricName.REQUESTS_TOTAL)
            store.record_sample(MetricName.RESPONSE_TIMES, ms)
        store.increment(MetricName.REQUESTS_ERRORS, 5)
        store.increment(MetricName.CACHE_HITS, 3)
        store.increment(MetricName.CACHE_MISSES, 1)
        store.set(MetricName.DB_ACTIVE_CONNECTIONS, 5)
        store.set(MetricName.DB_POOL_SIZE, 20)
        store.set(MetricName.USERS_ACTIVE, 42)

        snapshot = collector.collect_once()
        app = snapshot.application

        assert snapshot.timestamp == T0
        assert app.requests.total == 100
        assert app.requests.success_rate == pytest.approx(0.95)
        assert app.performance.avg_response_time == pytest.approx(50.5)
        assert app.performance.p95_response_time == 95
        assert app.performance.p99_response_time == 99
        assert app.cache.hit_rate == pytest.approx(0.75)
        assert app.database.pool_usage == 25.0
        assert snapshot.business.active_users == 42
        assert snapshot.infrastructure.cpu.usage == 10.0

    def test_empty_store_neutral_values(self, collector):
        snapshot = collector.collect_once()
        assert snapshot.application.performance.avg_response_time == 0.0
        assert snapshot.application.performance.apdex == 1.0
        assert snapshot.application.requests.success_rate == 1.0
        assert snapshot.application.cache.hit_rate == 0.0

    def test_unchanged_store_is_idempotent(self, collector, store, clock):
        store.increment(MetricName.REQUESTS_TOTAL, 10)
        store.record_sample(MetricName.RESPONSE_TIMES, 120.0)

        first = collector.collect_once()
        clock.advance(seconds=30)
        second = collector.collect_once()

        assert second.timestamp > first.timestamp
        assert first.derived_fields() == second.derived_fields()

    def test_publishes_system_gauges(self, collector, store):
        collector.collect_once()
        assert store.get(MetricName.SYSTEM_CPU_USAGE) == 10.0
        assert store.get(MetricName.SYSTEM_MEMORY_USAGE) == 40.0


class TestRequestRate:
    """Tests for requests per second."""

    def test_first_tick_is_baseline(self, collector, store):
        store.increment(MetricName.REQUESTS_TOTAL, 100)
        assert collector.collect_once().application.requests.rate == 0.0

    def test_rate_from_counter_delta(self, collector, store, clock):
        store.increment(MetricName.REQUESTS_TOTAL, 100)
        collector.collect_once()

        store.increment(MetricName.REQUESTS_TOTAL, 50)
        clock.advance(seconds=10)

        assert collector.collect_once().application.requests.rate == pytest.approx(5.0)

    def test_gauge_wins(self, collector, store, clock):
        store.set(MetricName.REQUESTS_RATE, 42)
        collector.collect_once()
        clock.advance(seconds=10)
        assert collector.collect_once().application.requests.rate == 42.0

    def test_counter_reset_is_not_negative(self, collector, store, clock):
        store.increment(MetricName.REQUESTS_TOTAL, 100)
        collector.collect_once()
        store.reset()
        clock.advance(seconds=10)
        assert collector.collect_once().application.requests.rate == 0.0


# ============================================================
# TICK
# ============================================================

class TestTick:
    """Tests for one collect-and-publish cycle."""

    @pytest.mark.asyncio
    async def test_tick_publishes(self, collector, store):
        received = []
        collector.subscribe(received.append)

        snapshot = await collector.tick()

        assert received == [snapshot]
        assert store.get(MetricName.COLLECTOR_TICKS) == 1

    @pytest.mark.asyncio
    async def test_failed_tick_is_counted(self, collector, store):
        def broken():
            raise RuntimeError("store exploded")

        collector.collect_once = broken
        assert await collector.tick() is None
        assert store.get(MetricName.COLLECTOR_TICK_ERRORS) == 1

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_fail_tick(self, collector, store):
        def bad_sink(snapshot):
            raise ValueError("disk full")

        received = []
        collector.subscribe(bad_sink)
        collector.subscribe(received.append)

        assert await collector.tick() is not None
        assert len(received) == 1
        assert store.get(MetricName.SINK_ERRORS) == 1
        assert store.get(MetricName.COLLECTOR_TICK_ERRORS) == 0

    @pytest.mark.asyncio
    async def test_processor_runs_after_sinks(self, collector):
        order = []

        async def processor(snapshot):
            order.append("processor")

        collector.add_processor(processor)
        collector.add_processor(processor)
        collector.subscribe(lambda snapshot: order.append("sink"))

        await collector.tick()

        assert order == ["sink", "processor"]

    @pytest.mark.asyncio
    async def test_processor_is_not_bound_by_sink_timeout(self, store):
        collector = MetricsCollector(
            store,
            config=CollectorConfig(sink_timeout_seconds=0.05),
            sources=fixed_sources(),
            clock=MockClock(T0),
        )
        done = []

        async def slow_processor(snapshot):
            await asyncio.sleep(0.2)
            done.append(snapshot)

        collector.add_processor(slow_processor)
        snapshot = await collector.tick()
        collector._sources.shutdown()

        assert done == [snapshot]
        assert store.get(MetricName.SINK_ERRORS) == 0

    @pytest.mark.asyncio
    async def test_failing_processor_keeps_snapshot(self, collector, store):
        async def broken(snapshot):
            raise RuntimeError("engine exploded")

        collector.add_processor(broken)

        assert await collector.tick() is not None
        assert store.get(MetricName.COLLECTOR_TICK_ERRORS) == 1


# ============================================================
# SCHEDULE
# ============================================================

class TestSchedule:
    """Tests for the fixed-rate loop."""

    @pytest.mark.asyncio
    async def test_no_drift(self, store, clock):
        sleeps = []
        collector = MetricsCollector(store, sources=fixed_sources(), clock=clock)
        collector._sleep = clock_sleep(clock, sleeps, collector, stop_after=3)
        # Each tick takes 0.3s of work
        collector.subscribe(lambda snapshot: clock.advance(seconds=0.3))

        await collector.run(interval=10)

        assert sleeps == [pytest.approx(9.7)] * 3
        assert collector.ticks_skipped == 0

    @pytest.mark.asyncio
    async def test_overrun_skips_missed_slots(self, store, clock):
        sleeps = []
        collector = MetricsCollector(store, sources=fixed_sources(), clock=clock)
        collector._sleep = clock_sleep(clock, sleeps, collector, stop_after=2)

        overran = []

        def slow_once(snapshot):
            if not overran:
                overran.append(True)
                clock.advance(seconds=25)

        collector.subscribe(slow_once)
        await collector.run(interval=10)

        # Tick 0 ends at t=25: slots 10 and 20 are skipped, next tick at 30
        assert sleeps[0] == pytest.approx(5.0)
        assert sleeps[1] == pytest.approx(10.0)
        assert collector.ticks_skipped == 2

    @pytest.mark.asyncio
    async def test_loop_survives_failed_tick(self, store, clock):
        sleeps = []
        collector = MetricsCollector(store, sources=fixed_sources(), clock=clock)
        collector._sleep = clock_sleep(clock, sleeps, collector, stop_after=2)

        real_collect = collector.collect_once
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")
            return real_collect()

        received = []
        collector.collect_once = flaky
        collector.subscribe(received.append)

        await collector.run(interval=10)

        assert store.get(MetricName.COLLECTOR_TICK_ERRORS) == 1
        assert store.get(MetricName.COLLECTOR_TICKS) == 1
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_rejects_non_positive_interval(self, collector):
        with pytest.raises(ValueError):
            await collector.run(interval=0)


# ============================================================
# SHUTDOWN
# ============================================================

class TestStop:
    """Tests for graceful shutdown."""

    @pytest.mark.asyncio
    async def test_in_flight_tick_completes_within_grace(self, store, clock):
        collector = MetricsCollector(store, sources=fixed_sources(), clock=clock)
        finished = []

        async def slow_sink(snapshot):
            await asyncio.sleep(0.05)
            finished.append(snapshot)

        collector.subscribe(slow_sink)
        task = collector.start(interval=60)
        await asyncio.sleep(0.01)

        await collector.stop(grace_period=2.0)

        assert len(finished) == 1
        assert task.done()
        assert not collector.is_running
        assert collector.publisher.sinks == []

    @pytest.mark.asyncio
    async def test_tick_cancelled_after_grace(self, store, clock):
        collector = MetricsCollector(store, sources=fixed_sources(), clock=clock)
        finished = []

        async def stuck_sink(snapshot):
            await asyncio.sleep(10)
            finished.append(snapshot)

        collector.subscribe(stuck_sink)
        task = collector.start(interval=60)
        await asyncio.sleep(0.01)

        await collector.stop(grace_period=0.05)

        assert finished == []
        assert task.done()
