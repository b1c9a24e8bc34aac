"""
Monitoring - Metric Store.

============================================================
RESPONSIBILITY
============================================================
Shared sink for counters, gauges and bounded sample lists.

- Request-handling code writes (any number of threads)
- The collector reads a point-in-time copy (one reader)

============================================================
DESIGN PRINCIPLES
============================================================
- One short-held lock per operation, never held during reduction
- Writes never fail and never perform I/O
- Missing keys read as zero
- Explicitly constructed and injected, no module-level instance

============================================================
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Tuple, Union


Number = Union[int, float]


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time copy of the store contents."""

    counters: Dict[str, Number] = field(default_factory=dict)
    gauges: Dict[str, Number] = field(default_factory=dict)
    samples: Dict[str, Tuple[float, ...]] = field(default_factory=dict)

    def counter(self, name: str) -> Number:
        return self.counters.get(name, 0)

    def gauge(self, name: str, default: Number = 0) -> Number:
        return self.gauges.get(name, default)

    def has_gauge(self, name: str) -> bool:
        return name in self.gauges

    def sample_list(self, name: str) -> Tuple[float, ...]:
        return self.samples.get(name, ())


class MetricStore:
    """
    Thread-safe counter/gauge/sample store.

    Counters and gauges live in separate namespaces; `get` looks
    at gauges first, then counters.
    """

    DEFAULT_SAMPLE_CAP = 1000

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, Number] = {}
        self._gauges: Dict[str, Number] = {}
        self._samples: Dict[str, Deque[float]] = {}

    # --------------------------------------------------------
    # Writes
    # --------------------------------------------------------

    def increment(self, name: str, delta: Number = 1) -> None:
        """Atomically add `delta` to a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + delta

    def set(self, name: str, value: Number) -> None:
        """Atomically overwrite a gauge."""
        with self._lock:
            self._gauges[name] = value

    def record_sample(self, list_name: str, value: float, max_len: int = DEFAULT_SAMPLE_CAP) -> None:
        """
        Append to a bounded sample list, evicting the oldest values.

        Passing a different `max_len` re-bounds the list and keeps the
        newest values.
        """
        if max_len < 1:
            raise ValueError("max_len must be at least 1")

        with self._lock:
            samples = self._samples.get(list_name)
            if samples is None or samples.maxlen != max_len:
                samples = deque(samples or (), maxlen=max_len)
                self._samples[list_name] = samples
            samples.append(float(value))

    def reset(self) -> None:
        """Drop every metric."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------

    def get(self, name: str, default: Number = 0) -> Number:
        """Read one gauge or counter; missing keys return `default`."""
        with self._lock:
            if name in self._gauges:
                return self._gauges[name]
            return self._counters.get(name, default)

    def samples(self, list_name: str) -> Tuple[float, ...]:
        """Copy of one sample list."""
        with self._lock:
            return tuple(self._samples.get(list_name, ()))

    def read_all(self) -> StoreSnapshot:
        """
        Consistent copy of the whole store.

        Copying happens under the lock; all reduction is done by the
        caller on the copy.
        """
        with self._lock:
            return StoreSnapshot(
                counters=dict(self._counters),
                gauges=dict(self._gauges),
                samples={name: tuple(values) for name, values in self._samples.items()},
            )
