"""
Prometheus metrics for the gateway.

HTTP metrics are labelled with the matched route template, so unknown
paths collapse into a single series.
"""
import time

from fastapi import APIRouter
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQ_COUNTER = Counter("http_requests_total", "Total HTTP Requests", ["method", "path", "status"])
REQ_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Time until response headers are sent",
    ["method", "path"],
)
UPSTREAM_COUNTER = Counter(
    "upstream_requests_total", "Calls made to the Bailian backend", ["mode", "status"]
)
STREAM_END_COUNTER = Counter(
    "stream_terminations_total", "Streamed exchanges by how they ended", ["outcome"]
)

UNMATCHED_PATH = "unmatched"


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED_PATH)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            path = _route_path(request)
            REQ_COUNTER.labels(request.method, path, status).inc()
            REQ_LATENCY.labels(request.method, path).observe(time.perf_counter() - start)


def record_upstream(mode: str, status: int | str) -> None:
    UPSTREAM_COUNTER.labels(mode, str(status)).inc()


def record_stream_end(outcome: str) -> None:
    # finished | abnormal | error
    STREAM_END_COUNTER.labels(outcome).inc()


metrics_router = APIRouter(tags=["metrics"])


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
