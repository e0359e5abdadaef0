# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
HTTP middleware: request correlation and Prometheus request metrics.
"""

import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ims.core.logging import request_id_ctx
from ims.metrics import REQUEST_COUNT, REQUEST_LATENCY, HTTP_ERRORS

REQUEST_ID_HEADER = "X-Request-ID"

# Literal path segments; anything else is an identifier.
KNOWN_SEGMENTS: frozenset = frozenset({
    "api", "v1", "incidents", "status", "comments", "timeline", "subscribe",
    "subscribers", "reports", "kpis", "breakdown", "timeseries", "export",
    "export.csv", "document", "health", "ready", "metrics",
})

SKIP_PATHS: frozenset = frozenset({
    "/health", "/health/ready", "/metrics", "/openapi.json", "/docs", "/redoc",
})


def normalize_path(path: str) -> str:
    """Collapse identifiers into ``{param}`` so the endpoint label stays low-cardinality."""
    parts = path.strip("/").split("/")
    if parts == [""]:
        return path
    return "/" + "/".join(p if p in KNOWN_SEGMENTS else "{param}" for p in parts)


def endpoint_label(request: Request) -> str:
    """Route template of the matched route, e.g. ``/api/v1/incidents/{incident_id}``.
    Unmatched paths fall back to segment normalisation."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or normalize_path(request.url.path)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID or mint one; expose it to logging and echo it back."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests, observe latency and count 4xx/5xx per route template."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        status = "500"
        try:
            response = await call_next(request)
            status = str(response.status_code)
            return response
        finally:
            endpoint = endpoint_label(request)
            REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=status).inc()
            REQUEST_LATENCY.labels(method=request.method, endpoint=endpoint).observe(
                time.perf_counter() - start
            )
            if int(status) >= 400:
                HTTP_ERRORS.labels(method=request.method, endpoint=endpoint, status=status).inc()
