"""Prometheus metric helpers."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

_LATENCY_BUCKETS = (
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
    30.0,
)

REQUEST_COUNT = Counter(
    "symbiont_requests_total",
    "HTTP requests processed by the gateway",
    ("method", "path", "status"),
)

REQUEST_LATENCY = Histogram(
    "symbiont_request_latency_seconds",
    "Latency of HTTP requests processed by the gateway",
    ("method", "path"),
    buckets=_LATENCY_BUCKETS,
)

STAGE_MESSAGES = Counter(
    "symbiont_stage_messages_total",
    "Messages handled by stage workers, by outcome",
    ("stage", "outcome"),
)

STAGE_LATENCY = Histogram(
    "symbiont_stage_latency_seconds",
    "Time spent in a stage handler per message",
    ("stage",),
    buckets=_LATENCY_BUCKETS,
)

CALL_LATENCY = Histogram(
    "symbiont_call_latency_seconds",
    "Latency of correlated request/reply calls",
    ("topic", "outcome"),
    buckets=_LATENCY_BUCKETS,
)

FANOUT_LISTENERS = Gauge(
    "symbiont_fanout_listeners",
    "Listeners currently registered with the fanout hub",
    ("topic",),
)

FANOUT_DELIVERIES = Counter(
    "symbiont_fanout_deliveries_total",
    "Events handed to fanout listeners",
    ("topic",),
)

FANOUT_DEREGISTRATIONS = Counter(
    "symbiont_fanout_deregistrations_total",
    "Fanout listener registrations torn down, by reason",
    ("topic", "reason"),
)


def record_request(method: str, path: str, status_code: int, duration: float) -> None:
    """Record counters and histograms for a processed HTTP request."""

    REQUEST_COUNT.labels(method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(method, path).observe(duration)


def record_stage_result(stage: str, outcome: str, duration: float | None = None) -> None:
    """Count one stage message outcome and optionally its handler latency."""

    STAGE_MESSAGES.labels(stage, outcome).inc()
    if duration is not None:
        STAGE_LATENCY.labels(stage).observe(duration)


def record_call(topic: str, outcome: str, duration: float) -> None:
    CALL_LATENCY.labels(topic, outcome).observe(duration)


def set_listener_count(topic: str, count: int) -> None:
    FANOUT_LISTENERS.labels(topic).set(count)


def record_deliveries(topic: str, count: int) -> None:
    if count:
        FANOUT_DELIVERIES.labels(topic).inc(count)


def record_deregistration(topic: str, reason: str) -> None:
    FANOUT_DEREGISTRATIONS.labels(topic, reason).inc()
