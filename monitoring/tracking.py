"""
Monitoring - Request Tracking.

Helpers for request-handling code: time a request and record
its latency, outcome and APDEX bucket into the metric store.

    tracker = RequestTracker(store)

    with tracker.track("orders#create"):
        handle_request()

Writes only touch the store, never perform I/O.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from core.config import CollectorConfig

from .models import MetricName
from .store import MetricStore


logger = logging.getLogger(__name__)


class RequestTracker:
    """Records per-request metrics into a MetricStore."""

    def __init__(
        self,
        store: MetricStore,
        config: Optional[CollectorConfig] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self._store = store
        self._config = config or CollectorConfig()
        self._timer = timer

    @property
    def apdex_t_ms(self) -> float:
        return self._config.apdex_t_ms

    def record(self, duration_ms: float, error: bool = False, endpoint: str = "") -> None:
        """
        Record one finished request.

        APDEX buckets: satisfied at or below T, tolerating at or
        below 4T, frustrated above. Errors count as frustrated.
        """
        store = self._store
        t = self._config.apdex_t_ms

        store.increment(MetricName.REQUESTS_TOTAL)
        if error:
            store.increment(MetricName.REQUESTS_ERRORS)

        store.record_sample(MetricName.RESPONSE_TIMES, duration_ms, max_len=self._config.sample_cap)

        store.increment(MetricName.APDEX_TOTAL)
        if not error:
            if duration_ms <= t:
                store.increment(MetricName.APDEX_SATISFIED)
            elif duration_ms <= 4 * t:
                store.increment(MetricName.APDEX_TOLERATING)

        if duration_ms > self._config.slow_request_ms:
            store.increment(MetricName.SLOW_REQUESTS)
            logger.warning(f"[SLOW REQUEST] {endpoint or 'request'} took {duration_ms:.2f}ms")

    @contextmanager
    def track(self, endpoint: str = "") -> Iterator[None]:
        """Time the enclosed block; an exception counts as an error and is re-raised."""
        start = self._timer()
        error = False
        try:
            yield
        except Exception:
            error = True
            raise
        finally:
            duration_ms = round((self._timer() - start) * 1000, 2)
            self.record(duration_ms, error=error, endpoint=endpoint)

    # --------------------------------------------------------
    # Other ingress helpers
    # --------------------------------------------------------

    def record_cache(self, hit: bool) -> None:
        self._store.increment(MetricName.CACHE_HITS if hit else MetricName.CACHE_MISSES)

    def record_cache_eviction(self, count: int = 1) -> None:
        self._store.increment(MetricName.CACHE_EVICTIONS, count)

    def record_query(self, duration_ms: float, slow_threshold_ms: float = 50.0, statement: str = "") -> None:
        """Count slow database queries."""
        if duration_ms > slow_threshold_ms:
            self._store.increment(MetricName.DB_SLOW_QUERIES)
            logger.warning(f"[SLOW QUERY] {duration_ms:.2f}ms {statement[:200]}")

    def record_auth_failure(self) -> None:
        self._store.increment(MetricName.AUTH_FAILED)

    def record_suspicious_request(self) -> None:
        self._store.increment(MetricName.SUSPICIOUS_REQUESTS)
