"""Prometheus metrics for the access plane.

Usage::

    from access_plane.observability.metrics import SHARING_EVENTS_TOTAL

    SHARING_EVENTS_TOTAL.labels(action="invite.created").inc()
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "access_plane_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "access_plane_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Sharing metrics
# ---------------------------------------------------------------------------

SHARING_EVENTS_TOTAL = Counter(
    "access_plane_sharing_events_total",
    "Committed sharing mutations by audit action.",
    labelnames=["action"],
    registry=REGISTRY,
)

OUTBOX_EFFECTS_TOTAL = Counter(
    "access_plane_outbox_effects_total",
    "Post-commit invite effects by kind and outcome.",
    labelnames=["kind", "outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Prometheus exposition text and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
