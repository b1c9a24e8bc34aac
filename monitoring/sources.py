"""
Monitoring - Infrastructure Sources.

============================================================
PURPOSE
============================================================
Reads OS-level gauges (CPU, memory, disk, network) for the
collector.

PRINCIPLES:
- Every read is time-bounded
- A failing source never aborts the tick
- Failures fall back to the last known good value, or zero

============================================================
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import fields
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Optional

import psutil

from core.exceptions import MetricSourceError

from .models import (
    CpuMetrics,
    DiskMetrics,
    InfrastructureMetrics,
    MemoryMetrics,
    MetricName,
    NetworkMetrics,
)


logger = logging.getLogger(__name__)


MB = 1024 * 1024


# ============================================================
# SOURCE BASE
# ============================================================

class MetricSource(ABC):
    """
    One infrastructure gauge group.

    `read` may block briefly and may raise; the SourceReader
    handles both.
    """

    #: InfrastructureMetrics field this source fills
    group: str = ""

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.group

    @abstractmethod
    def read(self) -> Any:
        """Return the group's metrics dataclass."""
        pass

    @abstractmethod
    def default(self) -> Any:
        """Zero value used before the first successful read."""
        pass


class CpuSource(MetricSource):
    group = "cpu"

    def read(self) -> CpuMetrics:
        # interval=None compares against the previous call, never sleeps
        usage = psutil.cpu_percent(interval=None)
        load_avg = psutil.getloadavg()[0]
        times = psutil.cpu_times_percent(interval=None)
        return CpuMetrics(
            usage=float(usage),
            load_avg=float(load_avg),
            iowait=float(getattr(times, "iowait", 0.0)),
        )

    def default(self) -> CpuMetrics:
        return CpuMetrics()


class MemorySource(MetricSource):
    group = "memory"

    def read(self) -> MemoryMetrics:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return MemoryMetrics(
            used_mb=vm.used / MB,
            free_mb=vm.available / MB,
            total_mb=vm.total / MB,
            usage=float(vm.percent),
            swap=float(swap.percent),
        )

    def default(self) -> MemoryMetrics:
        return MemoryMetrics()


class DiskSource(MetricSource):
    group = "disk"

    def __init__(self, path: str = os.sep, name: Optional[str] = None):
        super().__init__(name)
        self.path = path

    def read(self) -> DiskMetrics:
        return DiskMetrics(usage=float(psutil.disk_usage(self.path).percent))

    def default(self) -> DiskMetrics:
        return DiskMetrics()


class NetworkSource(MetricSource):
    group = "network"

    def read(self) -> NetworkMetrics:
        io = psutil.net_io_counters()
        try:
            connections = len(psutil.net_connections(kind="inet"))
        except psutil.AccessDenied:
            # Listing sockets needs privileges on some platforms
            connections = 0
        return NetworkMetrics(
            bytes_in=int(io.bytes_recv),
            bytes_out=int(io.bytes_sent),
            connections=connections,
        )

    def default(self) -> NetworkMetrics:
        return NetworkMetrics()


class CallableSource(MetricSource):
    """Adapts a plain function, e.g. a cloud API poller."""

    def __init__(self, group: str, fn: Callable[[], Any], default_value: Any, name: Optional[str] = None):
        self.group = group
        super().__init__(name or group)
        self._fn = fn
        self._default = default_value

    def read(self) -> Any:
        return self._fn()

    def default(self) -> Any:
        return self._default


def default_sources() -> List[MetricSource]:
    """psutil-backed sources for every infrastructure group."""
    return [CpuSource(), MemorySource(), DiskSource(), NetworkSource()]


# ============================================================
# SOURCE READER
# ============================================================

class SourceReader:
    """
    Reads every source with a timeout.

    Keeps the last good value per source. A slow source keeps
    running in its worker thread but the caller moves on.
    """

    def __init__(
        self,
        sources: Optional[List[MetricSource]] = None,
        timeout_seconds: float = 2.0,
        store=None,
    ):
        self._sources = list(sources) if sources is not None else default_sources()
        known = {f.name for f in fields(InfrastructureMetrics)}
        for source in self._sources:
            if source.group not in known:
                raise ValueError(f"Source {source.name} has unknown group {source.group!r}")
        self._timeout = timeout_seconds
        self._store = store
        self._last_good: Dict[str, Any] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, len(self._sources)),
            thread_name_prefix="metric-source",
        )

    @property
    def sources(self) -> List[MetricSource]:
        return list(self._sources)

    def read_infrastructure(self) -> InfrastructureMetrics:
        """Read every source and assemble the infrastructure group."""
        groups: Dict[str, Any] = {}
        futures = {source.name: self._executor.submit(source.read) for source in self._sources}

        for source in self._sources:
            try:
                value = self._result(source, futures[source.name])
                self._last_good[source.name] = value
            except MetricSourceError as e:
                logger.warning(e.to_log_format())
                if self._store is not None:
                    self._store.increment(MetricName.COLLECTOR_SOURCE_ERRORS)
                value = self._last_good.get(source.name, source.default())
            groups[source.group] = value

        return InfrastructureMetrics(**groups)

    def _result(self, source: MetricSource, future) -> Any:
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeout as e:
            future.cancel()
            raise MetricSourceError(source.name, f"timed out after {self._timeout}s", cause=e)
        except Exception as e:
            raise MetricSourceError(source.name, str(e), cause=e)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
