"""
Request metrics and access logging
"""

import time

from fastapi import Request
from prometheus_client import Counter, Histogram
import structlog

logger = structlog.get_logger()

REQUEST_COUNT = Counter(
    "funnel_http_requests_total",
    "HTTP requests handled by the funnel API",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "funnel_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
)


def endpoint_label(request: Request) -> str:
    """Route template, e.g. /api/leads/{lead_id}, so ids don't explode label cardinality"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


async def metrics_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    endpoint = endpoint_label(request)
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status_code=str(response.status_code)).inc()
    REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(elapsed)

    response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
    return response


async def access_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)

    # Tracking pixels fire on every email open
    log = logger.debug if request.url.path.endswith("/track-open") else logger.info
    log(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        client_ip=request.client.host if request.client else "unknown",
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response
