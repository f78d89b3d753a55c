"""Tenant resolution middleware.

For every request a fresh TenantContext and RuntimeConfig are created and
stored on ``request.state``. For tenant-scoped paths the tenant is resolved
before the endpoint runs; resolution failures render as ``{"message": ...}``
responses directly, since middleware runs outside the exception handlers.
Applying tenant overrides is best effort: a failure is logged at critical
and the request continues on framework defaults.
"""

from __future__ import annotations

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.tenancy.config import get_settings
from src.tenancy.core.exceptions import NoContextTenant, TenantError, TenantNotFound
from src.tenancy.core.tenant import TenantContext, bind_context, reset_context
from src.tenancy.tenants.pipeline import ConfigurationPipeline
from src.tenancy.tenants.runtime import RuntimeConfig

logger = structlog.get_logger(__name__)

EXPECTED_TENANT_HEADER = "X-Tenant-ID"

# ── Paths that skip tenant resolution ───────────────────────────────────────

SKIP_TENANT_PATHS = (
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/metrics",
    "/api/v1/tenants",
)


def skip_paths_for(api_prefix: str) -> tuple[str, ...]:
    """Skip list including the config endpoints that resolve on their own."""
    prefix = api_prefix.rstrip("/")
    return SKIP_TENANT_PATHS + (f"{prefix}/public", f"{prefix}/cache")


# ── Tenant Middleware ───────────────────────────────────────────────────────


class TenantMiddleware(BaseHTTPMiddleware):
    """Establishes the tenant context of each request.

    Collaborators are read from ``request.app.state`` (tenant_resolver,
    lookup_extractor, request_privacy, tenant_registries) so tests can swap
    them without rebuilding the middleware stack.
    """

    def __init__(self, app: ASGIApp, skip_paths: tuple[str, ...] | None = None) -> None:
        super().__init__(app)
        self._skip_paths = skip_paths if skip_paths is not None else SKIP_TENANT_PATHS

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ctx = TenantContext()
        runtime = RuntimeConfig.from_settings(get_settings())
        request.state.tenant_context = ctx
        request.state.runtime_config = runtime

        token = bind_context(ctx)
        try:
            path = request.url.path
            if any(path.startswith(skip) for skip in self._skip_paths):
                return await call_next(request)

            state = request.app.state
            is_internal = state.request_privacy.is_internal(request)
            lookup_key = state.lookup_extractor.extract(request, is_internal=is_internal)

            try:
                if lookup_key is None:
                    raise TenantNotFound()
                tenant = await state.tenant_resolver.resolve_tenant(lookup_key)
                ctx.set(tenant)
                expected = request.headers.get(EXPECTED_TENANT_HEADER)
                if expected:
                    ctx.ensure(expected)
            except TenantError as exc:
                ctx.clear()
                logger.info("tenant_resolution_failed", path=path, error=type(exc).__name__)
                return JSONResponse(status_code=exc.status_code, content=exc.to_response())

            request.state.tenant_public_id = tenant.public_id
            apply_tenant_overrides(state.tenant_registries.pipeline, ctx, runtime)
            return await call_next(request)
        finally:
            reset_context(token)


def apply_tenant_overrides(
    pipeline: ConfigurationPipeline, ctx: TenantContext, runtime: RuntimeConfig
) -> bool:
    """Apply tenant overrides to ``runtime``; on failure keep the defaults.

    Returns:
        True if the overrides were applied, False if the defaults are kept.
    """
    try:
        pipeline.apply(ctx, runtime)
    except NoContextTenant:
        logger.critical("tenant_overrides_skipped_no_context")
        runtime.reset()
        return False
    except Exception:
        logger.critical(
            "tenant_overrides_failed",
            tenant=ctx.get().public_id if ctx.has_tenant() else None,
            exc_info=True,
        )
        runtime.reset()
        return False
    return True
