"""Tenant administration endpoints (internal callers only)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response, status

from src.tenancy.api.deps import (
    get_dump_service,
    get_provisioning_service,
    require_internal_request,
)
from src.tenancy.tenants.dump import DumpMode, TenantDumpService
from src.tenancy.tenants.provisioning import TenantProvisioningService
from src.tenancy.tenants.schemas import TenantConfigUpdate, TenantCreate, TenantSummary

router = APIRouter(
    prefix="/api/v1/tenants",
    tags=["tenants"],
    dependencies=[Depends(require_internal_request)],
)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TenantSummary)
async def create_tenant(
    body: TenantCreate,
    service: TenantProvisioningService = Depends(get_provisioning_service),
) -> TenantSummary:
    """Provision a tenant from a seeder template."""
    tenant = await service.provision(
        name=body.name,
        domain=body.domain,
        template=body.template,
        identifier=body.identifier,
        parent_public_id=body.parent_id,
        base_config=body.config,
        tier=body.tier,
    )
    return TenantSummary.from_tenant(tenant)


@router.get("", response_model=list[TenantSummary])
async def list_tenants(
    service: TenantProvisioningService = Depends(get_provisioning_service),
) -> list[TenantSummary]:
    return [TenantSummary.from_tenant(t) for t in await service.list_tenants()]


@router.get("/{public_id}")
async def get_tenant_dump(
    public_id: str,
    service: TenantProvisioningService = Depends(get_provisioning_service),
    dump_service: TenantDumpService = Depends(get_dump_service),
) -> dict[str, Any]:
    tenant = await service.get(public_id)
    return dump_service.serialize(tenant, DumpMode.protected)


@router.patch("/{public_id}/config")
async def update_tenant_config(
    public_id: str,
    body: TenantConfigUpdate,
    service: TenantProvisioningService = Depends(get_provisioning_service),
    dump_service: TenantDumpService = Depends(get_dump_service),
) -> dict[str, Any]:
    """Set and forget persisted config keys; returns the protected dump."""
    tenant = await service.update_config(
        public_id,
        entries={key: (entry.value, entry.visibility) for key, entry in body.entries.items()},
        forget=body.forget,
    )
    return dump_service.serialize(tenant, DumpMode.protected)


@router.delete("/{public_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    public_id: str,
    service: TenantProvisioningService = Depends(get_provisioning_service),
) -> Response:
    """Soft-delete a tenant."""
    await service.deactivate(public_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
