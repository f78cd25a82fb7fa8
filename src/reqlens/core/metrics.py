"""Process-wide metric primitives: counters, histograms and function gauges.

Metrics live for the lifetime of the process. Every mutation happens under the
owning metric's lock so concurrent increments and observations never lose
updates. Exports are snapshots; reading never resets anything.
"""

import math
import threading
import time
from collections.abc import Callable, Iterable

from reqlens.core.models import MetricSample

DEFAULT_HISTOGRAM_BUCKETS = [10.0, 50.0, 100.0, 200.0, 500.0, 1000.0]

LabelKey = tuple[tuple[str, str], ...]


def elapsed_ms(start: float) -> int:
    """Whole milliseconds elapsed since a ``time.perf_counter()`` reading."""
    return max(0, int((time.perf_counter() - start) * 1000))


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


class Counter:
    """Monotonically increasing counter, optionally split by labels."""

    kind = "counter"

    def __init__(self, name: str, help: str = "") -> None:
        self.name = name
        self.help = help
        self._values: dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0, labels: dict[str, str] | None = None) -> None:
        """Increment the counter.

        Args:
            amount: Non-negative increment (default 1).
            labels: Optional dimension labels.

        Raises:
            ValueError: If amount is negative.
        """
        if amount < 0:
            raise ValueError("Counters can only be incremented by non-negative amounts")
        key = _label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def value(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._values.get(_label_key(labels), 0.0)

    def collect(self) -> list[MetricSample]:
        with self._lock:
            values = dict(self._values)
        if not values:
            values = {(): 0.0}
        return [
            MetricSample(name=self.name, kind=self.kind, value=v, labels=dict(key))
            for key, v in sorted(values.items())
        ]


class Histogram:
    """Distribution of observations over fixed bucket boundaries.

    Buckets are upper-inclusive and exported cumulatively, with an implicit
    ``+Inf`` bucket, a running sum and a count.
    """

    kind = "histogram"

    def __init__(
        self,
        name: str,
        help: str = "",
        buckets: Iterable[float] | None = None,
    ) -> None:
        bounds = sorted(
            float(b) for b in (buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS)
        )
        if not bounds:
            raise ValueError("Histogram requires at least one bucket")
        self.name = name
        self.help = help
        self.buckets = bounds
        self._counts = [0] * len(bounds)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        with self._lock:
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[i] += 1
                    break
            self._sum += value
            self._count += 1

    def start_timer(self) -> Callable[[], int]:
        """Start timing; the returned callable records and returns elapsed ms."""
        start = time.perf_counter()

        def stop() -> int:
            duration = elapsed_ms(start)
            self.observe(duration)
            return duration

        return stop

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def sum(self) -> float:
        with self._lock:
            return self._sum

    def collect(self) -> list[MetricSample]:
        with self._lock:
            counts = list(self._counts)
            total = self._sum
            count = self._count

        samples: list[MetricSample] = []
        cumulative = 0
        for bound, bucket_count in zip(self.buckets, counts, strict=True):
            cumulative += bucket_count
            samples.append(
                MetricSample(
                    name=f"{self.name}_bucket",
                    kind=self.kind,
                    value=float(cumulative),
                    labels={"le": _format_bound(bound)},
                )
            )
        samples.append(
            MetricSample(
                name=f"{self.name}_bucket",
                kind=self.kind,
                value=float(count),
                labels={"le": "+Inf"},
            )
        )
        samples.append(MetricSample(name=f"{self.name}_sum", kind=self.kind, value=total))
        samples.append(
            MetricSample(name=f"{self.name}_count", kind=self.kind, value=float(count))
        )
        return samples


class Gauge:
    """Gauge whose value is read from a callback at collection time."""

    kind = "gauge"

    def __init__(self, name: str, help: str, fn: Callable[[], float]) -> None:
        self.name = name
        self.help = help
        self._fn = fn

    def collect(self) -> list[MetricSample]:
        return [MetricSample(name=self.name, kind=self.kind, value=float(self._fn()))]


Metric = Counter | Histogram | Gauge


def _format_bound(bound: float) -> str:
    if math.isinf(bound):
        return "+Inf"
    if bound.is_integer():
        return str(int(bound))
    return repr(bound)


class MetricsRegistry:
    """Registry of named metrics with deterministic snapshot export."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _register(self, name: str, kind: str, factory: Callable[[], Metric]) -> Metric:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is not None:
                if existing.kind != kind:
                    raise ValueError(
                        f"Metric {name!r} already registered as {existing.kind}"
                    )
                return existing
            metric = factory()
            self._metrics[name] = metric
            return metric

    def counter(self, name: str, help: str = "") -> Counter:
        metric = self._register(name, Counter.kind, lambda: Counter(name, help))
        assert isinstance(metric, Counter)
        return metric

    def histogram(
        self,
        name: str,
        help: str = "",
        buckets: Iterable[float] | None = None,
    ) -> Histogram:
        metric = self._register(
            name, Histogram.kind, lambda: Histogram(name, help, buckets)
        )
        assert isinstance(metric, Histogram)
        return metric

    def gauge(self, name: str, help: str, fn: Callable[[], float]) -> Gauge:
        metric = self._register(name, Gauge.kind, lambda: Gauge(name, help, fn))
        assert isinstance(metric, Gauge)
        return metric

    def increment(
        self, name: str, amount: float = 1.0, labels: dict[str, str] | None = None
    ) -> None:
        self.counter(name).inc(amount, labels)

    def start_timer(self, name: str) -> Callable[[], int]:
        return self.histogram(name).start_timer()

    def get(self, name: str) -> Metric | None:
        with self._lock:
            return self._metrics.get(name)

    def families(self) -> list[Metric]:
        """Registered metrics ordered by name."""
        with self._lock:
            return [self._metrics[name] for name in sorted(self._metrics)]

    def collect(self) -> list[MetricSample]:
        """Snapshot every registered metric as samples, ordered by name."""
        samples: list[MetricSample] = []
        for metric in self.families():
            samples.extend(metric.collect())
        return samples


REGISTRY = MetricsRegistry()


def app_errors_counter(registry: MetricsRegistry) -> Counter:
    """The application-wide error counter shared by handlers and middleware."""
    return registry.counter("app_errors_total", "Total number of errors in the application")
