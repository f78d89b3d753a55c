"""Outward-facing tenant representations.

serialize() produces::

    {id, name, domain, parent_id, config, created_at, updated_at}

where ``config`` holds only the keys visible in the requested mode plus a
``__visibility`` map of exactly those keys. ``id`` and ``parent_id`` are
public ids; internal ids never leave the service.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

import structlog

from src.tenancy.core.exceptions import TenantNotFound
from src.tenancy.core.monitoring import tenant_dump_cache_total
from src.tenancy.core.redis import JsonCache
from src.tenancy.tenants.config_value import ConfigValue
from src.tenancy.tenants.pipeline import ConfigurationPipeline
from src.tenancy.tenants.providers import ConfigProviderRegistry
from src.tenancy.tenants.schemas import Tenant

logger = structlog.get_logger(__name__)

VISIBILITY_KEY = "__visibility"
PUBLIC_API_FLAG = "allow_public_config_api"
ALL_TENANTS_CACHE_KEY = "dump:all"


class DumpMode(str, Enum):
    public = "public"
    protected = "protected"


class TenantLister(Protocol):
    async def list_active(self) -> list[Tenant]: ...


def allows_public_api(tenant: Tenant) -> bool:
    """True only when the tenant's own config sets the flag to boolean true."""
    return tenant.config.get(PUBLIC_API_FLAG) is True


class TenantDumpService:
    """Builds visibility-filtered tenant dumps and the cached all-tenants list.

    Args:
        providers: Dump-time providers applied to every dump.
        pipeline: Presentation pipes applied to the all-tenants dump.
        repository: Source of the active tenant list.
        cache: Shared JSON cache for the all-tenants dump.
        cache_ttl: TTL of the all-tenants dump in seconds.
    """

    def __init__(
        self,
        providers: ConfigProviderRegistry,
        pipeline: ConfigurationPipeline,
        repository: TenantLister | None = None,
        cache: JsonCache | None = None,
        cache_ttl: int = 60,
    ) -> None:
        self._providers = providers
        self._pipeline = pipeline
        self._repository = repository
        self._cache = cache
        self._cache_ttl = cache_ttl

    def build_config(self, tenant: Tenant, with_pipeline: bool = False) -> ConfigValue:
        """Effective config, optionally with pipe output, enhanced by providers."""
        config = tenant.effective_config()
        if with_pipeline:
            resolved = self._pipeline.resolve(tenant, config.data)
            config = config.merge(resolved.to_config_value())
        return self._providers.enhance(tenant, config)

    def serialize(
        self, tenant: Tenant, mode: DumpMode | str, with_pipeline: bool = False
    ) -> dict[str, Any]:
        """Serialize ``tenant`` for ``mode``.

        Raises:
            TenantNotFound: In public mode when the tenant has not opted in
                to the public config API.
        """
        mode = DumpMode(mode)
        if mode is DumpMode.public and not allows_public_api(tenant):
            raise TenantNotFound(tenant.domain)

        config = self.build_config(tenant, with_pipeline=with_pipeline)
        visible = (
            config.get_public_config()
            if mode is DumpMode.public
            else config.get_protected_config()
        )
        visible.pop(VISIBILITY_KEY, None)
        visibility = {key: config.get_visibility(key).value for key in visible}

        return {
            "id": tenant.public_id,
            "name": tenant.name,
            "domain": tenant.domain,
            "parent_id": tenant.parent_public_id,
            "config": {**visible, VISIBILITY_KEY: visibility},
            "created_at": tenant.created_at.isoformat() if tenant.created_at else None,
            "updated_at": tenant.updated_at.isoformat() if tenant.updated_at else None,
        }

    async def dump_all(self) -> list[dict[str, Any]]:
        """Protected dumps of every active tenant, cached for ``cache_ttl`` seconds.

        Concurrent misses each recompute and overwrite the entry.
        """
        if self._cache is not None:
            cached = await self._cache.get_json(ALL_TENANTS_CACHE_KEY)
            if cached is not None:
                tenant_dump_cache_total.labels(result="hit").inc()
                return cached
        tenant_dump_cache_total.labels(result="miss").inc()

        if self._repository is None:
            raise RuntimeError("TenantDumpService has no repository to list tenants from")
        tenants = await self._repository.list_active()
        dumps = [self.serialize(t, DumpMode.protected, with_pipeline=True) for t in tenants]

        if self._cache is not None:
            await self._cache.set_json(ALL_TENANTS_CACHE_KEY, dumps, self._cache_ttl)
        logger.info("tenant_dump_cache_rebuilt", tenants=len(dumps))
        return dumps

    async def forget_all(self) -> None:
        if self._cache is not None:
            await self._cache.delete(ALL_TENANTS_CACHE_KEY)
