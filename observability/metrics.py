"""In-process counters and gauges for the job engine."""
from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple, Union

JOBS_SUBMITTED = "jobs.submitted_total"
JOBS_COMPLETED = "jobs.completed_total"
JOBS_FAILED = "jobs.failed_total"
JOBS_IN_FLIGHT = "jobs.in_flight"
BATCHES_SUBMITTED = "batches.submitted_total"
RESULTS_SAVED = "results.saved_total"
RESULTS_FAILED = "results.failed_total"

# (name, kind, help) for everything the engine reports on /api/health.
ENGINE_METRICS: Tuple[Tuple[str, str, str], ...] = (
    (JOBS_SUBMITTED, "counter", "Jobs accepted by submit_job or submit_batch"),
    (JOBS_COMPLETED, "counter", "Jobs that finished with image data"),
    (JOBS_FAILED, "counter", "Jobs that finished with an error"),
    (JOBS_IN_FLIGHT, "gauge", "Generation calls currently outstanding"),
    (BATCHES_SUBMITTED, "counter", "Batches accepted by submit_batch"),
    (RESULTS_SAVED, "counter", "Images written to disk"),
    (RESULTS_FAILED, "counter", "Image writes that hit a filesystem error"),
)


class Counter:
    """Monotonically increasing counter."""

    kind = "counter"

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help = help_text
        self._value = 0.0
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"counter {self.name} cannot decrease")
        with self._lock:
            self._value += amount

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class Gauge(Counter):
    """Value that moves both ways, e.g. outstanding generation calls."""

    kind = "gauge"

    def inc(self, amount: float = 1.0) -> None:
        self.add(amount)

    def add(self, amount: float) -> None:
        with self._lock:
            self._value += amount

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)


Metric = Union[Counter, Gauge]
_KINDS = {"counter": Counter, "gauge": Gauge}


class MetricsRegistry:
    """Named metrics; asking for an existing name returns the same object."""

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, name: str, kind: str, help_text: str = "") -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = _KINDS[kind](name, help_text)
                self._metrics[name] = metric
            elif metric.kind != kind:
                raise TypeError(f"metric {name} is already registered as a {metric.kind}")
            return metric

    def counter(self, name: str, help_text: str = "") -> Counter:
        return self._get_or_create(name, "counter", help_text)

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        return self._get_or_create(name, "gauge", help_text)  # type: ignore[return-value]

    def get(self, name: str) -> Optional[Metric]:
        with self._lock:
            return self._metrics.get(name)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda metric: metric.name)
        return {metric.name: metric.value for metric in metrics}


def register_engine_metrics(registry: MetricsRegistry) -> MetricsRegistry:
    for name, kind, help_text in ENGINE_METRICS:
        registry._get_or_create(name, kind, help_text)
    return registry


_DEFAULT_REGISTRY = register_engine_metrics(MetricsRegistry())


def get_registry() -> MetricsRegistry:
    return _DEFAULT_REGISTRY


__all__ = [
    "BATCHES_SUBMITTED",
    "Counter",
    "ENGINE_METRICS",
    "Gauge",
    "JOBS_COMPLETED",
    "JOBS_FAILED",
    "JOBS_IN_FLIGHT",
    "JOBS_SUBMITTED",
    "MetricsRegistry",
    "RESULTS_FAILED",
    "RESULTS_SAVED",
    "get_registry",
    "register_engine_metrics",
]
