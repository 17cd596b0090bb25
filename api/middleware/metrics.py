"""
Prometheus metrics middleware for the lead intelligence API.

Exposes /metrics endpoint with request counters, latency histograms,
and engine business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "lead_engine_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "lead_engine_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "lead_engine_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
INTENT_COUNT = Counter(
    "lead_engine_intent_recognition_total",
    "Intent recognitions",
    ["intent"],
)
ESCALATION_COUNT = Counter(
    "lead_engine_escalations_total",
    "Messages flagged for human escalation",
)
STAGE_CHANGES = Counter(
    "lead_engine_stage_changes_total",
    "Journey stage transitions",
    ["from_stage", "to_stage"],
)
CONVERSION_PROBABILITY = Histogram(
    "lead_engine_conversion_probability",
    "Conversion probability distribution",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)
STORE_FAILURES = Counter(
    "lead_engine_unpersisted_results_total",
    "Results returned without being persisted",
    ["kind"],
)


def record_intent(intent: str, escalated: bool = False):
    """Record an intent recognition event."""
    INTENT_COUNT.labels(intent=intent).inc()
    if escalated:
        ESCALATION_COUNT.inc()


def record_journey_update(previous_stage: str, stage: str, probability: float):
    """Record a journey recomputation."""
    if previous_stage != stage:
        STAGE_CHANGES.labels(from_stage=previous_stage, to_stage=stage).inc()
    CONVERSION_PROBABILITY.observe(probability)


def record_store_failure(kind: str):
    """Record a result that could not be persisted."""
    STORE_FAILURES.labels(kind=kind).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        endpoint = request.url.path

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
