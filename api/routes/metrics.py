"""
Prometheus Metrics Endpoint for the identity verification API.

Exposes application metrics in Prometheus format at /metrics.
"""
import time
import logging
from fastapi import APIRouter, Request, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

router = APIRouter()

REQUEST_COUNT = Counter(
    "identity_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "identity_request_latency_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)
# "success" or the failing stage's error code
MRZ_OUTCOMES = Counter(
    "identity_mrz_outcomes_total",
    "MRZ reading outcomes",
    ["result"]
)
# "match", "no_match", "no_face" or an error code
FACE_OUTCOMES = Counter(
    "identity_face_outcomes_total",
    "Face comparison outcomes",
    ["result"]
)


UNMATCHED_ROUTE = "unmatched"


def route_label(request: Request) -> str:
    """Path template of the matched route; unknown paths share one label."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect request metrics."""

    async def dispatch(self, request: Request, call_next):
        # Skip metrics collection for /metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        latency = time.time() - start_time

        endpoint = route_label(request)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code
        ).inc()

        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(latency)

        return response


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
