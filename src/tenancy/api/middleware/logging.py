"""Structured request logging.

Every log line emitted while a request is in flight carries its
``request_id`` (bound through structlog contextvars) and, once the tenant
middleware has resolved it, the tenant public id. Internal callers may pass
their own ``X-Request-ID`` so SSR and API logs can be joined.

Tenant config values and internal ids are never logged.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.tenancy.config import Environment, get_settings
from src.tenancy.core.tenant import current_tenant_public_id

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def add_tenant(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: tag events with the bound tenant's public id."""
    if "tenant" not in event_dict:
        tenant = current_tenant_public_id()
        if tenant is not None:
            event_dict["tenant"] = tenant
    return event_dict


def configure_structlog() -> None:
    """JSON lines in production, console rendering everywhere else."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_tenant,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _request_id(request: Request) -> str:
    inbound = request.headers.get(REQUEST_ID_HEADER, "").strip()
    # Inbound ids must be short alphanumeric tokens
    if inbound and len(inbound) <= 64 and inbound.replace("-", "").isalnum():
        return inbound
    return str(uuid.uuid4())


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one ``request_completed`` line per request with status and timing."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                tenant=getattr(request.state, "tenant_public_id", None),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        if response.status_code >= 500:
            log_method = logger.error
        elif response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info

        log_method(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            tenant=getattr(request.state, "tenant_public_id", None),
            request_id=request_id,
        )
        return response
