"""
FastAPI middleware for Prometheus request metrics.
"""

import time
from typing import Awaitable, Callable

from fastapi import Request, Response

from .metrics import REQUEST_COUNT, REQUEST_DURATION, REQUESTS_IN_FLIGHT

# Probes and scrapes would drown out real traffic.
UNTRACKED_PATHS = frozenset({"/metrics", "/health", "/ready"})


def _route_label(request: Request) -> str:
    """Use the route template (`/purchases/{userid}`) so user ids don't explode cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def metrics_middleware(
    request: Request, call_next: Callable[..., Awaitable[Response]]
) -> Response:
    """
    Track request count, duration and in-flight requests.
    """
    if request.url.path in UNTRACKED_PATHS:
        return await call_next(request)

    REQUESTS_IN_FLIGHT.inc()
    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.perf_counter() - start_time
        REQUESTS_IN_FLIGHT.dec()

        route = _route_label(request)
        REQUEST_COUNT.labels(
            method=request.method, route=route, status=str(status_code)
        ).inc()
        REQUEST_DURATION.labels(method=request.method, route=route).observe(duration)
