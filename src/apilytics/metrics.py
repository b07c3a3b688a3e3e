"""Prometheus instrumentation for the reporter itself."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

REPORTS_COUNTER = Counter(
    "apilytics_reports_total",
    "Count of metric reports handed to the collector, by outcome",
    labelnames=("outcome",),
)

REPORT_LATENCY = Histogram(
    "apilytics_report_latency_seconds",
    "Latency of outbound deliveries to the collector",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


def record_report_outcome(outcome: str, latency: float | None = None) -> None:
    """Record one delivery outcome: ``sent``, ``failed`` or ``dropped``."""

    REPORTS_COUNTER.labels(outcome=outcome).inc()
    if latency is not None:
        REPORT_LATENCY.observe(latency)
