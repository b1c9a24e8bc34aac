"""
Monitoring - Health Checks.

============================================================
RESPONSIBILITY
============================================================
Implements health checking for the host and registered
components (database ping, cache ping, ...).

- Checks every registered component
- Aggregates overall system health
- Reports health status

============================================================
DESIGN PRINCIPLES
============================================================
- Health checks are lightweight and time-bounded
- A check that raises or times out is UNHEALTHY
- Silence is a failure

============================================================
HEALTH STATES
============================================================
- HEALTHY: All checks passing
- DEGRADED: A non-critical check failing, system operational
- UNHEALTHY: A critical check failing
- UNKNOWN: Nothing registered

============================================================
"""

import asyncio
import inspect
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import psutil

from core.clock import ClockProtocol, get_clock


logger = logging.getLogger(__name__)


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ComponentHealth:
    component_name: str
    state: HealthState
    last_check: datetime
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.state == HealthState.HEALTHY


@dataclass(frozen=True)
class SystemHealth:
    overall_state: HealthState
    components: List[ComponentHealth]
    last_check: datetime

    @property
    def healthy_count(self) -> int:
        return sum(1 for c in self.components if c.state == HealthState.HEALTHY)

    @property
    def degraded_count(self) -> int:
        return sum(1 for c in self.components if c.state == HealthState.DEGRADED)

    @property
    def unhealthy_count(self) -> int:
        return sum(1 for c in self.components if c.state == HealthState.UNHEALTHY)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.overall_state.value,
            "timestamp": self.last_check.isoformat(),
            "checks": {
                c.component_name: {
                    "state": c.state.value,
                    "message": c.message,
                    **c.details,
                }
                for c in self.components
            },
        }


# ============================================================
# CHECKS
# ============================================================

class HealthCheck(ABC):
    """
    One checkable component.

    `probe` returns (healthy, message, details) and may block
    briefly; it runs in a worker thread.
    """

    def __init__(self, name: str, critical: bool = True):
        self.name = name
        self.critical = critical

    @abstractmethod
    def probe(self) -> Tuple[bool, str, Dict[str, Any]]:
        pass


class DiskSpaceCheck(HealthCheck):
    """Disk usage below `max_usage` percent."""

    def __init__(self, path: str = os.sep, max_usage: float = 90.0, critical: bool = True):
        super().__init__("disk_space", critical)
        self.path = path
        self.max_usage = max_usage

    def probe(self):
        usage = psutil.disk_usage(self.path).percent
        return usage < self.max_usage, f"{usage:.1f}% used", {"usage": usage}


class MemoryCheck(HealthCheck):
    """Memory usage below `max_usage` percent."""

    def __init__(self, max_usage: float = 90.0, critical: bool = True):
        super().__init__("memory", critical)
        self.max_usage = max_usage

    def probe(self):
        usage = psutil.virtual_memory().percent
        return usage < self.max_usage, f"{usage:.1f}% used", {"usage": usage}


class CallableCheck(HealthCheck):
    """
    Adapts a ping function. A truthy return is healthy.

    Async functions are not supported here; register them with
    HealthChecker.register_async.
    """

    def __init__(self, name: str, fn: Callable[[], Any], critical: bool = True):
        super().__init__(name, critical)
        self._fn = fn

    def probe(self):
        ok = bool(self._fn())
        return ok, "ok" if ok else "check failed", {}


AsyncProbe = Callable[[], Awaitable[Union[bool, Any]]]


# ============================================================
# CHECKER
# ============================================================

class HealthChecker:
    """Runs every registered check and aggregates the result."""

    def __init__(
        self,
        checks: Optional[List[HealthCheck]] = None,
        timeout_seconds: float = 2.0,
        clock: Optional[ClockProtocol] = None,
    ):
        self._checks: List[HealthCheck] = list(checks) if checks is not None else default_checks()
        self._async_checks: Dict[str, tuple] = {}
        self._timeout = timeout_seconds
        self._clock = clock or get_clock()

    def register(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def register_async(self, name: str, fn: AsyncProbe, critical: bool = True) -> None:
        self._async_checks[name] = (fn, critical)

    async def check_all(self) -> SystemHealth:
        results = await asyncio.gather(
            *(self._run(check) for check in self._checks),
            *(self._run_async(name, fn) for name, (fn, _) in self._async_checks.items()),
        )

        critical = {c.name: c.critical for c in self._checks}
        critical.update({name: crit for name, (_, crit) in self._async_checks.items()})

        if not results:
            overall = HealthState.UNKNOWN
        elif any(r.state == HealthState.UNHEALTHY and critical[r.component_name] for r in results):
            overall = HealthState.UNHEALTHY
        elif any(not r.is_healthy for r in results):
            overall = HealthState.DEGRADED
        else:
            overall = HealthState.HEALTHY

        if overall != HealthState.HEALTHY:
            logger.warning(f"System health {overall.value}: " + ", ".join(
                f"{r.component_name}={r.state.value}" for r in results if not r.is_healthy
            ))

        return SystemHealth(overall_state=overall, components=list(results), last_check=self._clock.now())

    async def _run(self, check: HealthCheck) -> ComponentHealth:
        try:
            ok, message, details = await asyncio.wait_for(
                asyncio.to_thread(check.probe), timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            return self._failed(check.name, f"timed out after {self._timeout}s")
        except Exception as e:
            return self._failed(check.name, str(e))
        return ComponentHealth(
            component_name=check.name,
            state=HealthState.HEALTHY if ok else HealthState.UNHEALTHY,
            last_check=self._clock.now(),
            message=message,
            details=details,
        )

    async def _run_async(self, name: str, fn: AsyncProbe) -> ComponentHealth:
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=self._timeout)
        except asyncio.TimeoutError:
            return self._failed(name, f"timed out after {self._timeout}s")
        except Exception as e:
            return self._failed(name, str(e))
        ok = bool(result)
        return ComponentHealth(
            component_name=name,
            state=HealthState.HEALTHY if ok else HealthState.UNHEALTHY,
            last_check=self._clock.now(),
            message="ok" if ok else "check failed",
        )

    def _failed(self, name: str, message: str) -> ComponentHealth:
        logger.warning(f"Health check {name} failed: {message}")
        return ComponentHealth(
            component_name=name,
            state=HealthState.UNHEALTHY,
            last_check=self._clock.now(),
            message=message,
        )


def default_checks() -> List[HealthCheck]:
    """Disk and memory below 90%."""
    return [DiskSpaceCheck(), MemoryCheck()]
