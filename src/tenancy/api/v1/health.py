"""Liveness and readiness endpoints.

/health never touches a dependency. /health/ready requires the tenants
table to be reachable; Redis only backs caches, so a Redis failure reports
``degraded`` while still answering 200.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.tenancy.config import get_settings
from src.tenancy.core.database import get_engine, shared_metadata
from src.tenancy.core.redis import get_redis_pool

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_tenants_table() -> str | None:
    """Return an error string, or None when the tenants table answers."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text(f'SELECT 1 FROM "{shared_metadata.schema}".tenants LIMIT 1'))
    except Exception as exc:
        return str(exc)
    return None


async def _check_redis() -> str | None:
    try:
        if not await get_redis_pool().ping():
            return "PING did not return PONG"
    except Exception as exc:
        return str(exc)
    return None


@router.get("/health/ready")
async def readiness_check(request: Request):
    """200 when tenants can be resolved from storage, 503 otherwise."""
    checks: dict = {}
    database_error = await _check_tenants_table()
    redis_error = await _check_redis()
    checks["database"] = "error" if database_error else "ok"
    checks["redis"] = "error" if redis_error else "ok"
    if database_error:
        checks["database_error"] = database_error
    if redis_error:
        checks["redis_error"] = redis_error

    registries = getattr(request.app.state, "tenant_registries", None)
    if registries is not None:
        checks["templates"] = registries.seeders.templates()

    if database_error:
        state, code = "unavailable", status.HTTP_503_SERVICE_UNAVAILABLE
    elif redis_error:
        state, code = "degraded", status.HTTP_200_OK
    else:
        state, code = "ready", status.HTTP_200_OK
    return JSONResponse(status_code=code, content={"status": state, "checks": checks})
