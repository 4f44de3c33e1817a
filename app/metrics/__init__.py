"""Prometheus metric helpers and gateway metrics."""
from __future__ import annotations

from typing import Iterable, Tuple

from prometheus_client import Counter, Gauge, Histogram


def _label_tuple(labels: Iterable[str] | None) -> Tuple[str, ...]:
    return tuple(labels) if labels else ()


def metric_counter(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Counter:
    return Counter(name, documentation, _label_tuple(labels))


def metric_gauge(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Gauge:
    return Gauge(name, documentation, _label_tuple(labels))


def metric_histogram(
    name: str,
    documentation: str,
    labels: Iterable[str] | None = None,
) -> Histogram:
    return Histogram(name, documentation, _label_tuple(labels))


# outcome: ok | cached | redirect | forbidden | upstream | fallback
REQUESTS = metric_counter(
    "imagegw_requests_total",
    "Image requests by outcome",
    ["outcome"],
)
REQUEST_SECONDS = metric_histogram(
    "imagegw_request_seconds",
    "Wall time spent serving an image request",
)
CACHE_LOOKUPS = metric_counter(
    "imagegw_cache_total",
    "Edge cache lookups and write failures",
    ["result"],
)
CACHE_SIZE = metric_gauge(
    "imagegw_cache_entries",
    "Entries held by the in-memory cache",
)
# operation is the registered name or "unknown"; unresolved names are not used as labels
PIPELINE_STEPS = metric_counter(
    "imagegw_pipeline_steps_total",
    "Pipeline steps by operation and result",
    ["operation", "result"],
)
FALLBACKS = metric_counter(
    "imagegw_fallback_total",
    "Responses that fell back to the original image",
    ["kind"],
)

__all__ = [
    "metric_counter",
    "metric_gauge",
    "metric_histogram",
    "REQUESTS",
    "REQUEST_SECONDS",
    "CACHE_LOOKUPS",
    "CACHE_SIZE",
    "PIPELINE_STEPS",
    "FALLBACKS",
]
