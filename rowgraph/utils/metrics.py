"""
Projection Metrics - Prometheus-compatible metrics collection.

Lightweight in-process metrics for projection runs. Values can be exported
in the Prometheus text exposition format or read back as a summary dict.

Metrics Types:
- Counter: Monotonically increasing values (rows loaded, nodes added)
- Gauge: Values that can go up or down (size of the last projected graph)
- Histogram: Distribution of values (per-rule projection duration)
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

# (name suffix, extra labels, value)
Sample = Tuple[str, Dict[str, str], float]

DEFAULT_BUCKETS = [0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 60.0]


@dataclass
class CounterMetric:
    """Counter metric - monotonically increasing value."""

    name: str
    help: str
    labels: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0

    kind = "counter"

    def inc(self, amount: float = 1.0):
        self.value += amount

    def get(self) -> float:
        return self.value

    def reset(self):
        self.value = 0.0

    def samples(self) -> List[Sample]:
        return [("", {}, self.value)]

    def summary(self) -> float:
        return self.value


@dataclass
class GaugeMetric:
    """Gauge metric - value that can go up or down."""

    name: str
    help: str
    labels: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0

    kind = "gauge"

    def set(self, value: float):
        self.value = value

    def get(self) -> float:
        return self.value

    def reset(self):
        self.value = 0.0

    def samples(self) -> List[Sample]:
        return [("", {}, self.value)]

    def summary(self) -> float:
        return self.value


@dataclass
class HistogramMetric:
    """Histogram metric - cumulative bucket counts plus sum and count."""

    name: str
    help: str
    labels: Dict[str, str] = field(default_factory=dict)
    buckets: List[float] = field(default_factory=lambda: list(DEFAULT_BUCKETS))
    sum: float = 0.0
    count: int = 0
    bucket_counts: Dict[float, int] = field(default_factory=dict)

    kind = "histogram"

    def __post_init__(self):
        self.buckets = sorted(self.buckets)
        self.reset()

    def observe(self, value: float):
        self.sum += value
        self.count += 1
        for bucket in self.buckets:
            if value <= bucket:
                self.bucket_counts[bucket] += 1

    def reset(self):
        self.sum = 0.0
        self.count = 0
        self.bucket_counts = {bucket: 0 for bucket in self.buckets}

    def samples(self) -> List[Sample]:
        result: List[Sample] = [
            ("_bucket", {"le": str(bucket)}, self.bucket_counts[bucket]) for bucket in self.buckets
        ]
        result.append(("_bucket", {"le": "+Inf"}, self.count))
        result.append(("_sum", {}, self.sum))
        result.append(("_count", {}, self.count))
        return result

    def get_summary(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.sum,
            "avg": self.sum / self.count if self.count > 0 else 0.0,
        }

    summary = get_summary


class MetricsRegistry:
    """
    Central registry for all metrics.

    Thread-safe get-or-create of metrics keyed by name and labels, with
    Prometheus text export.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._metrics: Dict[str, Dict[str, Any]] = {"counter": {}, "gauge": {}, "histogram": {}}
        self._start_time = time.time()

    def counter(
        self, name: str, help: str, labels: Optional[Dict[str, str]] = None
    ) -> CounterMetric:
        """
        Get or create a counter metric.

        Args:
            name: Metric name
            help: Help text describing the metric
            labels: Optional labels for the metric
        """
        return self._get_or_create(
            "counter", name, labels, lambda: CounterMetric(name, help, dict(labels or {}))
        )

    def gauge(
        self, name: str, help: str, labels: Optional[Dict[str, str]] = None
    ) -> GaugeMetric:
        return self._get_or_create(
            "gauge", name, labels, lambda: GaugeMetric(name, help, dict(labels or {}))
        )

    def histogram(
        self,
        name: str,
        help: str,
        buckets: Optional[List[float]] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> HistogramMetric:
        return self._get_or_create(
            "histogram",
            name,
            labels,
            lambda: HistogramMetric(
                name, help, dict(labels or {}), list(buckets or DEFAULT_BUCKETS)
            ),
        )

    def _get_or_create(
        self, kind: str, name: str, labels: Optional[Dict[str, str]], factory: Callable[[], Any]
    ) -> Any:
        key = self._make_key(name, labels)
        with self._lock:
            store = self._metrics[kind]
            if key not in store:
                store[key] = factory()
            return store[key]

    def _make_key(self, name: str, labels: Optional[Dict[str, str]]) -> str:
        """Create unique key for metric with labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def export_prometheus(self) -> str:
        """Export all metrics in the Prometheus text exposition format."""
        lines = []
        with self._lock:
            for store in self._metrics.values():
                for metric in store.values():
                    lines.append(f"# HELP {metric.name} {metric.help}")
                    lines.append(f"# TYPE {metric.name} {metric.kind}")
                    for suffix, extra, value in metric.samples():
                        label_str = self._format_labels({**metric.labels, **extra})
                        lines.append(f"{metric.name}{suffix}{label_str} {value}")
        return "\n".join(lines) + "\n"

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        return "{" + ",".join(f'{k}="{v}"' for k, v in sorted(labels.items())) + "}"

    def get_summary(self) -> Dict[str, Any]:
        """Get current values of all metrics, keyed by kind then metric key."""
        with self._lock:
            summary: Dict[str, Any] = {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": time.time() - self._start_time,
            }
            for kind, store in self._metrics.items():
                summary[f"{kind}s"] = {key: metric.summary() for key, metric in store.items()}
            return summary

    def reset(self):
        """Reset all metric values; registered metrics stay registered."""
        with self._lock:
            for store in self._metrics.values():
                for metric in store.values():
                    metric.reset()


# Global registry instance
_global_registry = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return _global_registry


def counter(
    name: str, help: str, labels: Optional[Dict[str, str]] = None
) -> CounterMetric:
    return _global_registry.counter(name, help, labels)


def gauge(name: str, help: str, labels: Optional[Dict[str, str]] = None) -> GaugeMetric:
    return _global_registry.gauge(name, help, labels)


def histogram(
    name: str,
    help: str,
    buckets: Optional[List[float]] = None,
    labels: Optional[Dict[str, str]] = None,
) -> HistogramMetric:
    return _global_registry.histogram(name, help, buckets, labels)


def run_counter(status: str) -> CounterMetric:
    """Counter of finished projection runs for one terminal status."""
    return counter(
        "projection_runs_total",
        "Total number of projection runs by final state",
        {"status": status},
    )


# Projection Metrics

ROWS_LOADED_TOTAL = counter(
    "projection_rows_loaded_total", "Total number of source rows loaded"
)

NODES_ADDED_TOTAL = counter(
    "projection_nodes_added_total", "Total number of node records absorbed"
)

RELATIONSHIPS_ADDED_TOTAL = counter(
    "projection_relationships_added_total",
    "Total number of relationships added to the graph aggregate",
)

RELATIONSHIPS_SKIPPED_TOTAL = counter(
    "projection_relationships_skipped_total",
    "Total number of relationships skipped because an endpoint was missing",
)

NORMALIZATION_WARNINGS_TOTAL = counter(
    "normalization_warnings_total",
    "Total number of property values truncated or coerced to text",
)

GRAPH_NODES = gauge(
    "projection_graph_nodes", "Number of nodes in the last flushed graph aggregate"
)

RULE_DURATION_SECONDS = histogram(
    "projection_rule_duration_seconds", "Time taken to apply one rule"
)
