"""
Prometheus metrics collection for momo-pipeline

This module provides metrics instrumentation for classification,
durable queuing, backend sync and webhook relay.
"""
import os
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# CAPTURE METRICS
# =======================

messages_classified_total = Counter(
    name="momo_messages_classified_total",
    documentation="Inbound SMS classified, by outcome",
    labelnames=["country", "result"],  # result: pattern, heuristic, unparsed, not_financial
    registry=REGISTRY,
)

records_enqueued_total = Counter(
    name="momo_records_enqueued_total",
    documentation="Transaction records written to the local store",
    labelnames=["status"],  # status: inserted, duplicate
    registry=REGISTRY,
)

# =======================
# SYNC METRICS
# =======================

sync_attempts_total = Counter(
    name="momo_sync_attempts_total",
    documentation="Per-record delivery attempts to the backend",
    labelnames=["result"],  # result: synced, transient, rejected
    registry=REGISTRY,
)

sync_invocations_total = Counter(
    name="momo_sync_invocations_total",
    documentation="Sync engine invocations, by outcome",
    labelnames=["outcome"],  # outcome: success, retry, failure, skipped
    registry=REGISTRY,
)

sync_duration_seconds = Histogram(
    name="momo_sync_duration_seconds",
    documentation="Wall time of one sync invocation",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

wallet_credits_total = Counter(
    name="momo_wallet_credits_total",
    documentation="Wallet credit attempts, by result",
    labelnames=["result"],  # result: credited, duplicate, failed
    registry=REGISTRY,
)

# =======================
# WEBHOOK METRICS
# =======================

webhook_deliveries_total = Counter(
    name="momo_webhook_deliveries_total",
    documentation="Webhook relay attempts, by status",
    labelnames=["status"],  # status: sent, failed, skipped
    registry=REGISTRY,
)

webhook_latency_seconds = Histogram(
    name="momo_webhook_latency_seconds",
    documentation="Round-trip latency of webhook deliveries",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if labels:
        counter.labels(**labels).inc(value)
    else:
        counter.inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    if labels:
        histogram.labels(**labels).observe(value)
    else:
        histogram.observe(value)


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Read the current value of a sample (0.0 when never observed)."""
    value = REGISTRY.get_sample_value(name, labels or {})
    return value or 0.0
