"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- tenant_resolutions_total / tenant_dump_cache_total: tenant pipeline counters
- init_sentry(): Initialize Sentry with tenant-aware before_send callback
- get_metrics_response(): exposition for the /metrics route
"""

from __future__ import annotations

import time

import sentry_sdk
from prometheus_client import REGISTRY, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.tenancy.core.tenant import current_tenant_public_id

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code", "tenant_id"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "tenant_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Tenant Pipeline Metrics ──────────────────────────────────────────────────

tenant_resolutions_total = Counter(
    "tenant_resolutions_total",
    "Tenant resolutions by source (memory, cache, storage, miss)",
    ["source"],
)

tenant_dump_cache_total = Counter(
    "tenant_dump_cache_total",
    "All-tenants dump cache lookups",
    ["result"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records request count and duration per method/endpoint/tenant.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    The tenant label is read after the response, once the tenant middleware
    has resolved it.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        tenant_id = getattr(request.state, "tenant_public_id", None) or "unknown"
        endpoint = request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
            tenant_id=tenant_id,
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            tenant_id=tenant_id,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with tenant-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Tag events with the public id of the current tenant."""
        tenant_id = current_tenant_public_id()
        if tenant_id:
            event.setdefault("tags", {})["tenant_id"] = tenant_id
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
