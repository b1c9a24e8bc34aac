"""
Monitoring - Sinks and Fan-out.

============================================================
PURPOSE
============================================================
Delivers snapshots, alerts and scaling decisions to the
outside world.

Sinks are plain callables, sync or async. Each Publisher fans
one payload out to all of its sinks.

PRINCIPLES:
- One failing or slow sink never blocks the others
- Failures are logged and counted, never propagated
- Sinks are delivered to in subscription order

============================================================
"""

import asyncio
import inspect
import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Union

from core.exceptions import SinkError

from .models import Alert, AlertSeverity, MetricName, MetricSnapshot


logger = logging.getLogger(__name__)


Sink = Callable[[Any], Union[None, Awaitable[None]]]


def sink_name(sink: Sink) -> str:
    return getattr(sink, "__qualname__", None) or type(sink).__name__


def is_async_sink(sink: Sink) -> bool:
    """Coroutine functions, and objects with an async __call__."""
    return inspect.iscoroutinefunction(sink) or inspect.iscoroutinefunction(
        getattr(sink, "__call__", None)
    )


# ============================================================
# PUBLISHER
# ============================================================

class Publisher:
    """
    Fan-out to a list of sinks.

    Async sinks are awaited with a timeout. Sync sinks run in a
    worker thread under the same timeout; a timed-out thread is
    abandoned, not killed. A sink that raises or times out is
    reported as a SinkError, and the error counter in the store
    is incremented.
    """

    def __init__(self, name: str, store=None, timeout_seconds: float = 5.0):
        self.name = name
        self._store = store
        self._timeout = timeout_seconds
        self._sinks: List[Sink] = []

    @property
    def sinks(self) -> List[Sink]:
        return list(self._sinks)

    def subscribe(self, sink: Sink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unsubscribe(self, sink: Sink) -> bool:
        if sink in self._sinks:
            self._sinks.remove(sink)
            return True
        return False

    def clear(self) -> None:
        self._sinks.clear()

    async def publish(self, payload: Any) -> int:
        """Deliver `payload` to every sink; return the number that succeeded."""
        delivered = 0
        for sink in list(self._sinks):
            try:
                await self._deliver(sink, payload)
                delivered += 1
            except SinkError as e:
                logger.error(e.to_log_format(), exc_info=e.cause)
                if self._store is not None:
                    self._store.increment(MetricName.SINK_ERRORS)
        return delivered

    async def _deliver(self, sink: Sink, payload: Any) -> None:
        name = f"{self.name}:{sink_name(sink)}"
        try:
            if is_async_sink(sink):
                await asyncio.wait_for(sink(payload), timeout=self._timeout)
                return
            # Sync sinks may block on I/O; keep them off the loop
            result = await asyncio.wait_for(asyncio.to_thread(sink, payload), timeout=self._timeout)
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise SinkError(name, f"timed out after {self._timeout}s", cause=e)
        except Exception as e:
            raise SinkError(name, str(e), cause=e)


# ============================================================
# PERSISTENCE
# ============================================================

class SnapshotRepository(ABC):
    """Storage for snapshots. The format is up to the implementation."""

    @abstractmethod
    def save(self, snapshot: MetricSnapshot, retention: timedelta) -> None:
        """Store `snapshot` and drop anything older than `retention`."""
        pass

    @abstractmethod
    def recent(self, limit: int = 100) -> List[MetricSnapshot]:
        """Newest snapshots first."""
        pass


class InMemorySnapshotRepository(SnapshotRepository):
    """
    Snapshots keyed by timestamp.

    Pruning is relative to the newest stored timestamp, not the
    wall clock, so it is deterministic under a mock clock.
    """

    def __init__(self):
        self._snapshots: "OrderedDict[datetime, MetricSnapshot]" = OrderedDict()
        self._lock = threading.Lock()

    def save(self, snapshot: MetricSnapshot, retention: timedelta) -> None:
        with self._lock:
            self._snapshots[snapshot.timestamp] = snapshot
            newest = max(self._snapshots)
            cutoff = newest - retention
            expired = [ts for ts in self._snapshots if ts < cutoff]
            for ts in expired:
                del self._snapshots[ts]

        if expired:
            logger.debug(f"Pruned {len(expired)} snapshots older than {cutoff.isoformat()}")

    def recent(self, limit: int = 100) -> List[MetricSnapshot]:
        with self._lock:
            ordered = sorted(self._snapshots.values(), key=lambda s: s.timestamp, reverse=True)
        return ordered[:limit]

    def get(self, timestamp: datetime) -> Optional[MetricSnapshot]:
        with self._lock:
            return self._snapshots.get(timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)


class PersistenceSink:
    """Snapshot sink that saves to a repository with a fixed retention."""

    def __init__(self, repository: SnapshotRepository, retention: timedelta):
        self.repository = repository
        self.retention = retention

    def __call__(self, snapshot: MetricSnapshot) -> None:
        self.repository.save(snapshot, self.retention)


# ============================================================
# LOGGING SINKS
# ============================================================

class LoggingAlertNotifier:
    """Writes each alert to the log at a level matching its severity."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def __call__(self, alert: Alert) -> None:
        level = logging.CRITICAL if alert.severity == AlertSeverity.CRITICAL else logging.WARNING
        self._log.log(
            level,
            f"[ALERT] {alert.alert_type.title} ({alert.severity.value}): {alert.message}",
        )


class LoggingScalingSink:
    """Writes each scaling decision to the log."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def __call__(self, decision) -> None:
        if decision.should_scale:
            self._log.warning(
                f"[SCALING] {decision.strategy.value} recommended "
                f"(risk {decision.risks.score:.2f}): {decision.reason}"
            )
        else:
            self._log.debug(f"[SCALING] no action (risk {decision.risks.score:.2f})")
