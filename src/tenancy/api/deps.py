"""FastAPI dependency injection for tenant-scoped resources.

Services are created once in create_app() and stored on ``app.state``;
these dependencies hand them to endpoints. Tests replace them through
``app.dependency_overrides`` or by assigning ``app.state`` attributes.
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException, Request, status

from src.tenancy.core.exceptions import UntrustedRequest
from src.tenancy.core.privacy import RequestPrivacy
from src.tenancy.core.tenant import TenantContext
from src.tenancy.tenants.dump import TenantDumpService
from src.tenancy.tenants.provisioning import TenantProvisioningService
from src.tenancy.tenants.resolver import TenantResolver
from src.tenancy.tenants.schemas import Tenant


def _state_service(request: Request, name: str) -> Any:
    """Retrieve a service from app.state, 503 if not available."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized",
        )
    return service


async def get_tenant_context(request: Request) -> TenantContext:
    """The TenantContext created for this request by TenantMiddleware."""
    ctx = getattr(request.state, "tenant_context", None)
    if ctx is None:
        ctx = TenantContext()
        request.state.tenant_context = ctx
    return ctx


async def get_tenant(ctx: TenantContext = Depends(get_tenant_context)) -> Tenant:
    """The resolved tenant. Raises NoContextTenant on unscoped paths."""
    return ctx.get()


async def get_resolver(request: Request) -> TenantResolver:
    return _state_service(request, "tenant_resolver")


async def get_dump_service(request: Request) -> TenantDumpService:
    return _state_service(request, "dump_service")


async def get_provisioning_service(request: Request) -> TenantProvisioningService:
    return _state_service(request, "provisioning_service")


async def get_request_privacy(request: Request) -> RequestPrivacy:
    return _state_service(request, "request_privacy")


async def require_internal_request(
    request: Request,
    privacy: RequestPrivacy = Depends(get_request_privacy),
) -> None:
    """Reject callers that fail the internal trust gate.

    Raises:
        UntrustedRequest: If the client IP or SSR key check fails.
    """
    if not privacy.is_internal(request):
        raise UntrustedRequest()
