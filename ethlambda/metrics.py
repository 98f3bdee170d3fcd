"""Prometheus-style metrics with a default registry and text exposition."""

from __future__ import annotations

import math
import re
import threading
import time
from collections.abc import Iterable, Sequence
from typing import ClassVar, Optional

_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

DEFAULT_BUCKETS: tuple[float, ...] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)
"""Histogram buckets used when none are given."""


class MetricError(Exception):
    """Raised when a metric is misconfigured, misused or registered twice."""


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_label_value(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(pairs: Iterable[tuple[str, str]]) -> str:
    inner = ",".join(f'{name}="{_escape_label_value(value)}"' for name, value in pairs)
    return "{" + inner + "}" if inner else ""


class _Metric:
    """A named metric family that renders itself in the text format."""

    kind: ClassVar[str] = "untyped"

    def __init__(self, name: str, help_text: str) -> None:
        if not isinstance(name, str) or not _METRIC_NAME.match(name):
            raise MetricError(f"invalid metric name: {name!r}")
        if not help_text:
            raise MetricError("empty help string")
        self.name = name
        self.help_text = help_text
        self._lock = threading.Lock()

    def _samples(self) -> list[str]:
        raise NotImplementedError

    def expose(self) -> str:
        """The family in the Prometheus text format, or "" when it has no samples."""
        samples = self._samples()
        if not samples:
            return ""
        header = [
            f"# HELP {self.name} {_escape_help(self.help_text)}",
            f"# TYPE {self.name} {self.kind}",
        ]
        return "\n".join(header + samples) + "\n"


class IntCounter(_Metric):
    """A monotonically increasing integer counter."""

    kind = "counter"

    def __init__(self, name: str, help_text: str) -> None:
        super().__init__(name, help_text)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self, amount: int = 1) -> None:
        if amount < 0:
            raise MetricError("counter cannot decrease")
        with self._lock:
            self._value += int(amount)

    def _labelled(self, labels: str) -> list[str]:
        return [f"{self.name}{labels} {self._value}"]

    def _samples(self) -> list[str]:
        return self._labelled("")

    def expose(self) -> str:
        """The counter in the Prometheus text format."""
        return super().expose()


class IntGauge(_Metric):
    """An integer value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help_text: str) -> None:
        super().__init__(name, help_text)
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += int(amount)

    def dec(self, amount: int = 1) -> None:
        with self._lock:
            self._value -= int(amount)

    def set(self, value: int) -> None:
        with self._lock:
            self._value = int(value)

    def _labelled(self, labels: str) -> list[str]:
        return [f"{self.name}{labels} {self._value}"]

    def _samples(self) -> list[str]:
        return self._labelled("")

    def expose(self) -> str:
        """The gauge in the Prometheus text format."""
        return super().expose()


def _check_buckets(buckets: Optional[Sequence[float]]) -> tuple[float, ...]:
    bounds = [float(bound) for bound in buckets] if buckets else list(DEFAULT_BUCKETS)
    if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
        bounds.pop()
    for lower, upper in zip(bounds, bounds[1:]):
        if not lower < upper:
            raise MetricError("histogram buckets must be in strictly increasing order")
    return tuple(bounds)


class Histogram(_Metric):
    """Counts observations into cumulative buckets and tracks their sum."""

    kind = "histogram"

    def __init__(
        self, name: str, help_text: str, buckets: Optional[Sequence[float]] = None
    ) -> None:
        super().__init__(name, help_text)
        self.buckets = _check_buckets(buckets)
        self._bucket_counts = [0] * len(self.buckets)
        self._count = 0
        self._sum = 0.0

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    def observe(self, value: float) -> None:
        value = float(value)
        with self._lock:
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    self._bucket_counts[index] += 1
            self._count += 1
            self._sum += value

    def _samples(self) -> list[str]:
        lines = [
            f'{self.name}_bucket{{le="{_format_float(bound)}"}} {count}'
            for bound, count in zip(self.buckets, self._bucket_counts)
        ]
        lines.append(f'{self.name}_bucket{{le="+Inf"}} {self._count}')
        lines.append(f"{self.name}_sum {_format_float(self._sum)}")
        lines.append(f"{self.name}_count {self._count}")
        return lines

    def expose(self) -> str:
        """The histogram in the Prometheus text format."""
        return super().expose()


class _MetricVec(_Metric):
    """A family of metrics partitioned by label values."""

    child_type: ClassVar[type]

    def __init__(self, name: str, help_text: str, labels: Sequence[str]) -> None:
        super().__init__(name, help_text)
        labels = tuple(labels)
        for label in labels:
            if not isinstance(label, str) or not _LABEL_NAME.match(label):
                raise MetricError(f"invalid label name: {label!r}")
        if len(set(labels)) != len(labels):
            raise MetricError("duplicate label names")
        self.labels = labels
        self._children: dict[tuple[str, ...], _Metric] = {}

    def with_label_values(self, *args: str):
        """The child metric for these label values, created on first use."""
        if len(args) != len(self.labels):
            raise MetricError(
                f"inconsistent label cardinality: expected {len(self.labels)} "
                f"label values, got {len(args)}"
            )
        values = tuple(str(value) for value in args)
        with self._lock:
            child = self._children.get(values)
            if child is None:
                child = self.child_type(self.name, self.help_text)
                self._children[values] = child
            return child

    def _samples(self) -> list[str]:
        with self._lock:
            children = list(self._children.items())
        keyed = [
            (sorted(zip(self.labels, values)), child) for values, child in children
        ]
        keyed.sort(key=lambda item: item[0])
        lines: list[str] = []
        for pairs, child in keyed:
            lines.extend(child._labelled(_format_labels(pairs)))
        return lines


class IntCounterVec(_MetricVec):
    """Integer counters partitioned by label values."""

    kind = "counter"
    child_type = IntCounter

    def with_label_values(self, *args: str) -> IntCounter:
        return super().with_label_values(*args)

    def expose(self) -> str:
        return super().expose()


class IntGaugeVec(_MetricVec):
    """Integer gauges partitioned by label values."""

    kind = "gauge"
    child_type = IntGauge

    def with_label_values(self, *args: str) -> IntGauge:
        return super().with_label_values(*args)

    def expose(self) -> str:
        return super().expose()


class Registry:
    """A set of uniquely named metric families."""

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> _Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise MetricError(
                    f"duplicate metrics collector registration attempted: {metric.name}"
                )
            self._metrics[metric.name] = metric
        return metric

    def gather(self) -> str:
        """Every registered family, ordered by name, in the text format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda metric: metric.name)
        return "".join(metric.expose() for metric in metrics)


DEFAULT_REGISTRY = Registry()
"""The registry that the register_* helpers and the metrics endpoint use."""


class TimingGuard:
    """Context manager that records the time spent inside it to a histogram."""

    def __init__(self, histogram: Histogram) -> None:
        self.histogram = histogram
        self._start: Optional[float] = None

    def __enter__(self) -> TimingGuard:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: object) -> None:
        if self._start is not None:
            self.histogram.observe(time.perf_counter() - self._start)
            self._start = None


def register_int_counter(name: str, help_text: str) -> IntCounter:
    counter = IntCounter(name, help_text)
    DEFAULT_REGISTRY.register(counter)
    return counter


def register_int_gauge(name: str, help_text: str) -> IntGauge:
    gauge = IntGauge(name, help_text)
    DEFAULT_REGISTRY.register(gauge)
    return gauge


def register_histogram(
    name: str, help_text: str, buckets: Optional[Sequence[float]] = None
) -> Histogram:
    histogram = Histogram(name, help_text, buckets)
    DEFAULT_REGISTRY.register(histogram)
    return histogram


def register_int_counter_vec(name: str, help_text: str, labels: Sequence[str]) -> IntCounterVec:
    vec = IntCounterVec(name, help_text, labels)
    DEFAULT_REGISTRY.register(vec)
    return vec


def register_int_gauge_vec(name: str, help_text: str, labels: Sequence[str]) -> IntGaugeVec:
    vec = IntGaugeVec(name, help_text, labels)
    DEFAULT_REGISTRY.register(vec)
    return vec


def gather_default_metrics() -> str:
    """All metrics of the default registry in the Prometheus text format."""
    return DEFAULT_REGISTRY.gather()