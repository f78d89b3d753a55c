"""FastAPI application factory.

Creates the app with tenant middleware, logging middleware, metrics
middleware, CORS, Sentry, lifespan events for database initialization, the
v1 API router and the tenant config router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from src.tenancy.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.tenancy.api.middleware.tenant import TenantMiddleware, skip_paths_for
from src.tenancy.api.v1 import tenant_config
from src.tenancy.api.v1.router import router as v1_router
from src.tenancy.config import Environment, Settings, get_settings
from src.tenancy.core.database import close_db, get_shared_session, init_db
from src.tenancy.core.exceptions import TenantError
from src.tenancy.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.tenancy.core.privacy import RequestPrivacy
from src.tenancy.core.redis import JsonCache, MemoryCache, close_redis, get_redis_pool
from src.tenancy.tenants.builtin import build_registries
from src.tenancy.tenants.dump import TenantDumpService
from src.tenancy.tenants.provisioning import TenantProvisioningService
from src.tenancy.tenants.repository import TenantRepository
from src.tenancy.tenants.resolver import LookupKeyExtractor, TenantResolver

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB and Sentry on startup, close on shutdown."""
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    log.info(
        "tenancy_started",
        strategy=settings.TENANT_RESOLUTION_STRATEGY.value,
        templates=app.state.tenant_registries.seeders.templates(),
    )

    yield

    await close_db()
    await close_redis()


def wire_services(
    app: FastAPI,
    settings: Settings,
    repository: Any | None = None,
    redis_client: aioredis.Redis | None = None,
) -> None:
    """Build the tenant services and store them on ``app.state``.

    ``repository`` and ``redis_client`` default to the SQLAlchemy repository
    and the shared Redis pool; tests pass in-memory doubles.
    """
    if repository is None:
        repository = TenantRepository(session_factory=get_shared_session)
    if redis_client is None:
        redis_client = get_redis_pool()

    registries = build_registries(settings)
    cache = JsonCache(redis_client, prefix="tenant")
    resolver = TenantResolver(
        repository,
        cache=cache,
        ttl=settings.TENANT_RESOLVER_TTL,
        memory=MemoryCache(settings.TENANT_RESOLVER_TTL, settings.TENANT_RESOLVER_MEMORY_SIZE),
        strategy=settings.TENANT_RESOLUTION_STRATEGY,
        cache_enabled=settings.ENVIRONMENT != Environment.local,
    )
    dump_service = TenantDumpService(
        registries.providers,
        registries.pipeline,
        repository=repository,
        cache=cache,
        cache_ttl=settings.TENANT_CACHE_TTL,
    )

    app.state.tenant_repository = repository
    app.state.tenant_registries = registries
    app.state.tenant_resolver = resolver
    app.state.lookup_extractor = LookupKeyExtractor(settings)
    app.state.request_privacy = RequestPrivacy(settings)
    app.state.dump_service = dump_service
    app.state.provisioning_service = TenantProvisioningService(
        repository, registries.seeders, resolver=resolver, dump_service=dump_service
    )


async def tenant_error_handler(request: Request, exc: TenantError) -> JSONResponse:
    """Render every TenantError as ``{"message": ...}``."""
    if exc.status_code >= 500:
        log.error("tenant_error", error=type(exc).__name__, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Tenancy API",
        version="0.1.0",
        description="Tenant resolution and visibility-filtered tenant configuration",
        lifespan=lifespan,
    )

    wire_services(app, settings)
    app.add_exception_handler(TenantError, tenant_error_handler)

    # Middleware is added in reverse order (last added = outermost)

    # Tenant middleware (inner -- resolves tenant context per request)
    app.add_middleware(TenantMiddleware, skip_paths=skip_paths_for(settings.TENANT_API_PREFIX))

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)
    app.include_router(tenant_config.router, prefix=settings.TENANT_API_PREFIX.rstrip("/"))

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
