"""
Metrics collection for CertChain.

Provides a simple, thread-safe metrics collection system that tracks:
- Counters: Monotonically increasing values (requests, certificates issued)
- Gauges: Point-in-time values (active connections, chain length)
- Histograms: Distribution of values (request latency)

``GET /api/metrics`` serves ``metrics.get_all()``.
"""

import threading
import time
from bisect import bisect_left
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

# Default latency bounds in milliseconds; the last bucket is +Inf
DEFAULT_BOUNDS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000)

Labels = dict[str, str] | None


def labels_key(labels: Labels) -> str:
    """Convert a labels dict to a stable string key, e.g. ``method="GET",status="200"``."""
    if not labels:
        return ""
    return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


@dataclass
class Histogram:
    """Cumulative-bucket histogram of observed values."""

    bounds: tuple[float, ...] = DEFAULT_BOUNDS
    counts: list[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float) -> None:
        """Record an observation."""
        self.sum += value
        self.count += 1
        self.counts[bisect_left(self.bounds, value)] += 1

    def to_dict(self) -> dict[str, Any]:
        buckets = {}
        running = 0
        for bound, bucket_count in zip((*self.bounds, float("inf")), self.counts):
            running += bucket_count
            buckets[str(bound)] = running
        return {
            "count": self.count,
            "sum": self.sum,
            "avg": self.sum / self.count if self.count else 0,
            "buckets": buckets,
        }


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Collects counters, gauges, and histograms with optional labels.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    # Counter operations

    def increment(self, name: str, value: int = 1, labels: Labels = None) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name][labels_key(labels)] += value

    def get_counter(self, name: str, labels: Labels = None) -> int:
        """Get current counter value."""
        with self._lock:
            return self._counters[name].get(labels_key(labels), 0)

    # Gauge operations

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        """Set a gauge value."""
        with self._lock:
            self._gauges[name][labels_key(labels)] = value

    def increment_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        with self._lock:
            self._gauges[name][labels_key(labels)] += value

    def decrement_gauge(self, name: str, value: float = 1.0, labels: Labels = None) -> None:
        with self._lock:
            self._gauges[name][labels_key(labels)] -= value

    def get_gauge(self, name: str, labels: Labels = None) -> float:
        """Get current gauge value."""
        with self._lock:
            return self._gauges[name].get(labels_key(labels), 0.0)

    # Histogram operations

    def timing(self, name: str, value_ms: float, labels: Labels = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            series = self._histograms[name]
            key = labels_key(labels)
            if key not in series:
                series[key] = Histogram()
            series[key].observe(value_ms)

    def get_histogram(self, name: str, labels: Labels = None) -> Histogram | None:
        with self._lock:
            return self._histograms.get(name, {}).get(labels_key(labels))

    @contextmanager
    def timer(self, name: str, labels: Labels = None):
        """Context manager for timing code blocks."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    # Export

    @staticmethod
    def _flatten(values: dict[str, Any]) -> Any:
        # Unlabelled series export as a bare value
        if len(values) == 1 and "" in values:
            return values[""]
        return dict(values)

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a JSON-serializable dictionary."""
        with self._lock:
            return {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {name: self._flatten(values) for name, values in self._counters.items()},
                "gauges": {name: self._flatten(values) for name, values in self._gauges.items()},
                "histograms": {
                    name: {key or "_total": hist.to_dict() for key, hist in series.items()}
                    for name, series in self._histograms.items()
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
