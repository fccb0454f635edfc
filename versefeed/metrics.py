"""Prometheus metrics collection and export.

This module provides Prometheus instrumentation for the VerseFeed API,
exposed at ``GET /metrics``.

Metric Types:
    Counters (always increase):
        - http_requests_total: Total HTTP requests by status, path, method
        - poems_created_total: Poems stored, by visibility and author kind
        - profile_updates_total: Profile updates, by outcome
        - visitor_increments_total: Visitor counter increments
        - payment_requests_total: Payment bridge calls, by kind and outcome
        - errors_total: Total errors by type, component

    Histograms (track distributions):
        - http_request_duration_seconds: HTTP request latency
        - payment_request_duration_seconds: Outbound processor call latency

Usage:
    ```python
    from versefeed.metrics import poems_created_total

    poems_created_total.labels(visibility="public", author="user").inc()
    ```

References:
    - Prometheus Python Client: https://github.com/prometheus/client_python
    - Metric Types: https://prometheus.io/docs/tutorials/understanding_metric_types/
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry for explicit metric control
# This avoids default process/platform metrics unless explicitly added
registry = CollectorRegistry()

# Outbound HTTP calls to the payment processor
DEFAULT_LATENCY_BUCKETS = (
    0.05,   # 50ms
    0.1,    # 100ms
    0.25,   # 250ms
    0.5,    # 500ms
    1.0,    # 1s
    2.5,    # 2.5s
    5.0,    # 5s
    10.0,   # 10s
    30.0,   # timeout
)

# Requests served by this process
HTTP_LATENCY_BUCKETS = (
    0.005,  # 5ms
    0.01,   # 10ms
    0.025,  # 25ms
    0.05,   # 50ms
    0.1,    # 100ms
    0.25,   # 250ms
    0.5,    # 500ms
    1.0,    # 1s
    2.5,    # 2.5s
)


# ========== COUNTER METRICS (always increase) ==========

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    labelnames=["status", "path", "method"],
    registry=registry,
)
"""Counter for tracking total HTTP requests by status, path, and method.

Labels:
    status: HTTP status code (e.g., "200", "404", "500")
    path: Route template (e.g., "/api/poems", "/api/files/{storage_id}")
    method: HTTP method (e.g., "GET", "POST")
"""

poems_created_total = Counter(
    "poems_created_total",
    "Total number of poems created",
    labelnames=["visibility", "author"],
    registry=registry,
)
"""Labels: visibility ("public"/"private"), author ("user"/"anonymous")."""

profile_updates_total = Counter(
    "profile_updates_total",
    "Total number of profile update attempts",
    labelnames=["status"],
    registry=registry,
)

visitor_increments_total = Counter(
    "visitor_increments_total",
    "Total number of visitor counter increments",
    registry=registry,
)

payment_requests_total = Counter(
    "payment_requests_total",
    "Total number of payment bridge requests",
    labelnames=["kind", "outcome"],
    registry=registry,
)
"""Counter for payment bridge calls.

Labels:
    kind: "order" or "subscription"
    outcome: "success", "invalid_request", "misconfigured", "processor_error", "failed"

Example:
    ```python
    payment_requests_total.labels(kind="order", outcome="success").inc()
    ```
"""

errors_total = Counter(
    "errors_total",
    "Total number of errors encountered",
    labelnames=["error_type", "component"],
    registry=registry,
)
"""Counter for tracking errors by type and component.

Labels:
    error_type: Exception class name (e.g., "ProfileUpdateError")
    component: Component where error occurred (e.g., "profiles", "payments", "http")
"""


# ========== HISTOGRAM METRICS (track distributions) ==========

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    labelnames=["status", "path", "method"],
    buckets=HTTP_LATENCY_BUCKETS,
    registry=registry,
)

payment_request_duration_seconds = Histogram(
    "payment_request_duration_seconds",
    "Duration of outbound payment processor calls in seconds",
    labelnames=["kind"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=registry,
)


# ========== HELPER FUNCTIONS ==========


def generate_metrics_output() -> bytes:
    """Generate Prometheus metrics output in text format.

    Returns:
        Metrics output as bytes (suitable for HTTP response)

    Note:
        This uses the custom registry, so only explicitly registered metrics are included.
    """
    return generate_latest(registry)


METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


__all__ = [
    "registry",
    "http_requests_total",
    "poems_created_total",
    "profile_updates_total",
    "visitor_increments_total",
    "payment_requests_total",
    "errors_total",
    "http_request_duration_seconds",
    "payment_request_duration_seconds",
    "generate_metrics_output",
    "METRICS_CONTENT_TYPE",
    "DEFAULT_LATENCY_BUCKETS",
    "HTTP_LATENCY_BUCKETS",
]
