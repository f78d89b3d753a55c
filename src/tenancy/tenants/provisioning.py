"""Tenant provisioning and administrative updates.

Provisioning runs the seeder pipeline for a template and persists the
tenant together with its seeded config. Every mutation drops the resolver
and dump cache entries for the tenant so the change is visible on the next
request rather than after the TTL.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.tenancy.core.exceptions import DuplicateTenant, InvalidLookupKey, TenantNotFound
from src.tenancy.tenants.config_value import Visibility
from src.tenancy.tenants.dump import TenantDumpService
from src.tenancy.tenants.repository import TenantRepository
from src.tenancy.tenants.resolver import TenantResolver, normalize_host
from src.tenancy.tenants.schemas import Tenant
from src.tenancy.tenants.seeders import SeederRegistry

logger = structlog.get_logger(__name__)

# Keys handed to seeders for context only, not persisted unless the caller sent them
_SEEDER_CONTEXT_KEYS = ("domain", "identifier")


class TenantProvisioningService:
    """Creates tenants from templates and applies admin config changes."""

    def __init__(
        self,
        repository: TenantRepository,
        seeders: SeederRegistry,
        resolver: TenantResolver | None = None,
        dump_service: TenantDumpService | None = None,
    ) -> None:
        self._repository = repository
        self._seeders = seeders
        self._resolver = resolver
        self._dump_service = dump_service

    async def provision(
        self,
        name: str,
        domain: str,
        template: str = "basic",
        identifier: str | None = None,
        parent_public_id: str | None = None,
        base_config: dict[str, Any] | None = None,
        tier: str | None = None,
    ) -> Tenant:
        """Provision a tenant from ``template``.

        Raises:
            DuplicateTenant: If the domain or identifier is already taken.
            TenantNotFound: If ``parent_public_id`` names no tenant.
            InvalidLookupKey: If ``domain`` names no host.
            UnknownTemplate: If no seeder is registered for ``template``.
        """
        domain = normalize_host(domain)
        if domain is None:
            raise InvalidLookupKey()
        if await self._repository.exists(domain, identifier):
            raise DuplicateTenant()

        parent = None
        if parent_public_id:
            parent = await self._repository.get_by_public_id(parent_public_id)
            if parent is None:
                raise TenantNotFound(parent_public_id)

        caller_config = dict(base_config or {})
        seed_input = {**caller_config, "domain": domain}
        if identifier:
            seed_input["identifier"] = identifier

        config = self._seeders.build_config(template, seed_input, tier=tier)
        for key in _SEEDER_CONTEXT_KEYS:
            if key not in caller_config:
                config.forget(key)

        tenant = await self._repository.create(
            name=name,
            domain=domain,
            config=config,
            identifier=identifier,
            parent=parent,
        )
        if self._dump_service is not None:
            await self._dump_service.forget_all()

        logger.info(
            "tenant_provisioned",
            tenant=tenant.public_id,
            template=template,
            parent=parent.public_id if parent else None,
            keys=len(config),
        )
        return tenant

    async def update_config(
        self,
        public_id: str,
        entries: dict[str, tuple[Any, Visibility | None]] | None = None,
        forget: list[str] | None = None,
    ) -> Tenant:
        """Set and remove keys on a tenant's persisted config.

        Raises:
            TenantNotFound: If no non-deleted tenant has ``public_id``.
        """
        tenant = await self._get(public_id)
        config = tenant.config.copy()
        for key, (value, visibility) in (entries or {}).items():
            config.set(key, value, visibility)
        for key in forget or []:
            config.forget(key)

        updated = await self._repository.update_config(public_id, config)
        if updated is None:
            raise TenantNotFound(public_id)
        await self._invalidate(tenant)
        logger.info(
            "tenant_config_updated",
            tenant=public_id,
            set_keys=sorted(entries or {}),
            forgotten=sorted(forget or []),
        )
        return updated

    async def deactivate(self, public_id: str) -> Tenant:
        """Soft-delete a tenant.

        Raises:
            TenantNotFound: If no non-deleted tenant has ``public_id``.
        """
        tenant = await self._get(public_id)
        deleted = await self._repository.soft_delete(public_id)
        if deleted is None:
            raise TenantNotFound(public_id)
        await self._invalidate(tenant)
        logger.info("tenant_soft_deleted", tenant=public_id)
        return deleted

    async def list_tenants(self) -> list[Tenant]:
        return await self._repository.list_active()

    async def get(self, public_id: str) -> Tenant:
        """Get a non-deleted tenant by public id.

        Raises:
            TenantNotFound: If no non-deleted tenant has ``public_id``.
        """
        return await self._get(public_id)

    async def _get(self, public_id: str) -> Tenant:
        tenant = await self._repository.get_by_public_id(public_id)
        if tenant is None:
            raise TenantNotFound(public_id)
        return tenant

    async def _invalidate(self, tenant: Tenant) -> None:
        if self._resolver is not None:
            await self._resolver.forget(tenant)
        if self._dump_service is not None:
            await self._dump_service.forget_all()
