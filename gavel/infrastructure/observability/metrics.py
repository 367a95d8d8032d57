"""In-process metrics for the auction engine.

Counters and histograms live in a module-level registry and are exported in
Prometheus text format from the ``/metrics`` endpoint.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: Mapping[str, object] | None) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


def _render_labels(key: LabelKey) -> str:
    if not key:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in key) + "}"


@dataclass
class Counter:
    """A monotonically increasing counter, one value per label set."""

    name: str
    help_text: str = ""
    _values: dict[LabelKey, float] = field(default_factory=lambda: defaultdict(float))
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(self, value: float = 1.0, labels: Mapping[str, object] | None = None) -> None:
        if value < 0:
            raise ValueError("Counters can only increase")
        key = _label_key(labels)
        with self._lock:
            self._values[key] += value

    def get(self, labels: Mapping[str, object] | None = None) -> float:
        key = _label_key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> dict[LabelKey, float]:
        with self._lock:
            return dict(self._values)


@dataclass
class Histogram:
    """Count and sum of observed values, one series per label set."""

    name: str
    help_text: str = ""
    _observations: dict[LabelKey, list[float]] = field(
        default_factory=lambda: defaultdict(list)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float, labels: Mapping[str, object] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._observations[key].append(value)

    def get_stats(self, labels: Mapping[str, object] | None = None) -> dict[str, float]:
        key = _label_key(labels)
        with self._lock:
            values = list(self._observations.get(key, ()))
        if not values:
            return {"count": 0, "sum": 0.0, "avg": 0.0}
        total = sum(values)
        return {"count": len(values), "sum": total, "avg": total / len(values)}

    def label_keys(self) -> list[LabelKey]:
        with self._lock:
            return list(self._observations)


class MetricRegistry:
    """Holds every counter and histogram by name."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, help_text: str = "") -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)
            return self._counters[name]

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text)
            return self._histograms[name]

    def all_counters(self) -> dict[str, Counter]:
        with self._lock:
            return dict(self._counters)

    def all_histograms(self) -> dict[str, Histogram]:
        with self._lock:
            return dict(self._histograms)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()


_registry = MetricRegistry()


def get_registry() -> MetricRegistry:
    return _registry


def reset_metrics() -> None:
    """Drop every recorded value. Intended for tests."""
    _registry.clear()


def increment_counter(
    name: str,
    value: float = 1.0,
    labels: Mapping[str, object] | None = None,
    help_text: str = "",
) -> None:
    _registry.counter(name, help_text).inc(value, labels)


def observe_histogram(
    name: str,
    value: float,
    labels: Mapping[str, object] | None = None,
    help_text: str = "",
) -> None:
    _registry.histogram(name, help_text).observe(value, labels)


# Metric names
API_REQUESTS = "api_requests_total"
API_REQUEST_DURATION = "api_request_duration_seconds"
BIDS = "bids_total"
BID_RETRIES = "bid_write_retries_total"
STATUS_TRANSITIONS = "auction_status_transitions_total"
SETTLEMENTS = "auction_settlements_total"
SWEEP_RUNS = "sweep_runs_total"
SWEEP_CLOSED = "sweep_auctions_closed_total"
SWEEP_DURATION = "sweep_duration_seconds"


def record_api_request(
    endpoint: str, method: str, status_code: int, duration: float
) -> None:
    increment_counter(
        API_REQUESTS,
        labels={"endpoint": endpoint, "method": method, "status": status_code},
        help_text="Total API requests",
    )
    observe_histogram(
        API_REQUEST_DURATION,
        duration,
        labels={"endpoint": endpoint, "method": method},
        help_text="API request duration in seconds",
    )


def record_bid(outcome: str) -> None:
    """Count a bid attempt by outcome (``accepted`` or an error code)."""
    increment_counter(BIDS, labels={"outcome": outcome}, help_text="Total bid attempts")


def record_write_retry(operation: str) -> None:
    increment_counter(
        BID_RETRIES,
        labels={"operation": operation},
        help_text="Writes retried after losing a version check",
    )


def record_status_transition(old: str, new: str) -> None:
    increment_counter(
        STATUS_TRANSITIONS,
        labels={"from": old, "to": new},
        help_text="Persisted auction status changes",
    )


def record_settlement(outcome: str) -> None:
    increment_counter(
        SETTLEMENTS,
        labels={"outcome": outcome},
        help_text="Settlement attempts by outcome",
    )


def record_sweep(closed: int, duration: float) -> None:
    increment_counter(SWEEP_RUNS, help_text="Expiry sweeps executed")
    increment_counter(
        SWEEP_CLOSED, value=float(closed), help_text="Auctions closed by sweeps"
    )
    observe_histogram(SWEEP_DURATION, duration, help_text="Sweep duration in seconds")


def get_metrics_summary() -> dict[str, object]:
    """Return every metric as nested dictionaries, for the CLI or logs."""
    counters: dict[str, dict[str, float]] = {}
    for name, counter in _registry.all_counters().items():
        counters[name] = {
            (",".join(f"{k}={v}" for k, v in key) or "default"): value
            for key, value in counter.snapshot().items()
        }
    histograms: dict[str, dict[str, dict[str, float]]] = {}
    for name, histogram in _registry.all_histograms().items():
        histograms[name] = {
            (",".join(f"{k}={v}" for k, v in key) or "default"): histogram.get_stats(
                dict(key)
            )
            for key in histogram.label_keys()
        }
    return {"counters": counters, "histograms": histograms}


def format_prometheus() -> str:
    """Render all metrics in the Prometheus text exposition format."""
    lines: list[str] = []
    for name, counter in sorted(_registry.all_counters().items()):
        if counter.help_text:
            lines.append(f"# HELP {name} {counter.help_text}")
        lines.append(f"# TYPE {name} counter")
        for key, value in counter.snapshot().items():
            lines.append(f"{name}{_render_labels(key)} {value}")
    for name, histogram in sorted(_registry.all_histograms().items()):
        if histogram.help_text:
            lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} summary")
        for key in histogram.label_keys():
            stats = histogram.get_stats(dict(key))
            labels = _render_labels(key)
            lines.append(f"{name}_count{labels} {stats['count']}")
            lines.append(f"{name}_sum{labels} {stats['sum']}")
    return "\n".join(lines) + "\n"
