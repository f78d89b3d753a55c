"""Tenant config endpoints.

Mounted under TENANT_API_PREFIX:
- GET /protected: protected dump of the request's tenant (internal callers)
- GET /cache: cached protected dumps of all tenants (internal, feature flag)
- GET /public?domain=: public dump, only for tenants that opted in

Every error renders as ``{"message": ...}``. The public endpoint answers
404 both for unknown tenants and for tenants without the opt-in flag, so
it never reveals whether a domain belongs to a tenant.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.tenancy.api.deps import (
    get_dump_service,
    get_resolver,
    get_tenant,
    require_internal_request,
)
from src.tenancy.config import ResolutionStrategy, Settings, get_settings
from src.tenancy.core.exceptions import FeatureDisabled, InvalidLookupKey
from src.tenancy.tenants.dump import DumpMode, TenantDumpService
from src.tenancy.tenants.resolver import TenantResolver
from src.tenancy.tenants.schemas import Tenant

router = APIRouter(tags=["tenant-config"])


@router.get("/protected", dependencies=[Depends(require_internal_request)])
async def protected_config(
    tenant: Tenant = Depends(get_tenant),
    dump_service: TenantDumpService = Depends(get_dump_service),
) -> dict[str, Any]:
    """Protected-mode dump of the resolved tenant, for server-side rendering."""
    return dump_service.serialize(tenant, DumpMode.protected)


@router.get("/cache", dependencies=[Depends(require_internal_request)])
async def cached_configs(
    settings: Settings = Depends(get_settings),
    dump_service: TenantDumpService = Depends(get_dump_service),
) -> list[dict[str, Any]]:
    """All active tenants in protected mode, served from a short-TTL cache."""
    if not settings.TENANT_CACHE_API_ENABLED:
        raise FeatureDisabled()
    return await dump_service.dump_all()


@router.get("/public")
async def public_config(
    domain: str | None = Query(default=None, max_length=255),
    resolver: TenantResolver = Depends(get_resolver),
    dump_service: TenantDumpService = Depends(get_dump_service),
) -> dict[str, Any]:
    """Public-mode dump for browsers; requires ``allow_public_config_api``."""
    if not domain or not domain.strip():
        raise InvalidLookupKey()
    tenant = await resolver.resolve_tenant(domain, strategy=ResolutionStrategy.domain)
    return dump_service.serialize(tenant, DumpMode.public)
