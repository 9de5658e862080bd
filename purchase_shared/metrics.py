"""
Prometheus metrics shared by both purchase services.

Collectors live in the default registry; each service runs in its own
process, so the names do not collide.
"""

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# === HTTP METRICS ===
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route, and status",
    ["method", "route", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "route"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUESTS_IN_FLIGHT = Gauge(
    "http_requests_in_flight", "Number of HTTP requests currently being processed"
)

# === EVENT STREAM METRICS ===
MESSAGES_PUBLISHED = Counter(
    "kafka_messages_published_total",
    "Purchase events handed to the broker, by delivery outcome",
    ["status"],
)

MESSAGES_PROCESSED = Counter(
    "kafka_messages_processed_total",
    "Purchase events consumed, by outcome (stored, dropped, failed)",
    ["status"],
)

MESSAGE_PROCESSING_DURATION = Histogram(
    "kafka_message_processing_seconds",
    "Time spent handling one consumed message",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

MESSAGES_IN_QUEUE = Gauge(
    "kafka_messages_in_queue",
    "Number of Kafka messages currently being processed",
)

# === LIFECYCLE METRICS ===
SERVICE_READY = Gauge("service_ready", "Service readiness (1=ready, 0=not ready)")


def create_metrics_endpoint():
    """Create a /metrics endpoint for Prometheus."""

    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return metrics
