"""Tenant resolution: lookup key extraction and cached lookup.

Flow for resolve_tenant(key):
1. In-process MemoryCache (skipped when disabled)
2. Shared Redis JsonCache under ``tenant:resolve:{strategy}:{key}``
3. Repository lookup (active, non-deleted tenants only)
4. Populate both caches for TENANT_RESOLVER_TTL seconds

Misses are never cached and never fall back to a default tenant.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import urlsplit

import structlog
from starlette.requests import Request

from src.tenancy.config import ResolutionStrategy, Settings
from src.tenancy.core.exceptions import TenantNotFound
from src.tenancy.core.monitoring import tenant_resolutions_total
from src.tenancy.core.redis import JsonCache, MemoryCache
from src.tenancy.tenants.schemas import Tenant

logger = structlog.get_logger(__name__)


class TenantLookup(Protocol):
    async def get_by_domain(self, domain: str) -> Tenant | None: ...

    async def get_by_identifier(self, identifier: str) -> Tenant | None: ...


# ── Lookup key extraction ───────────────────────────────────────────────────


def _host(request: Request) -> str:
    return (request.url.hostname or "").lower()


def normalize_host(value: str) -> str | None:
    """Lower-cased host of a URL or bare host, without port."""
    value = value.strip()
    if "//" not in value:
        value = f"//{value}"
    try:
        host = urlsplit(value).hostname
    except ValueError:
        return None
    return host or None


class LookupKeyExtractor:
    """Extracts the resolution key from a request for the configured strategy."""

    def __init__(self, settings: Settings) -> None:
        self.strategy = settings.TENANT_RESOLUTION_STRATEGY
        self._header = settings.TENANT_DOMAIN_HEADER
        self._base_domain = settings.TENANT_BASE_DOMAIN.lower().lstrip(".")
        self._segment = settings.TENANT_PATH_SEGMENT

    def extract(self, request: Request, is_internal: bool = False) -> str | None:
        """Return the lookup key, or None when the request carries none.

        For the domain strategy, internal callers (SSR) may name the tenant
        host in the domain header instead of the request host.
        """
        if self.strategy is ResolutionStrategy.domain:
            if is_internal and request.headers.get(self._header):
                return normalize_host(request.headers[self._header])
            return _host(request) or None

        if self.strategy is ResolutionStrategy.header:
            value = request.headers.get(self._header, "").strip().lower()
            return value or None

        if self.strategy is ResolutionStrategy.subdomain:
            host = _host(request)
            suffix = f".{self._base_domain}"
            if not self._base_domain or not host.endswith(suffix):
                return None
            label = host[: -len(suffix)].split(".")[-1]
            return label or None

        segments = [s for s in request.url.path.split("/") if s]
        if len(segments) <= self._segment:
            return None
        return segments[self._segment].lower()


# ── Resolver ────────────────────────────────────────────────────────────────


class TenantResolver:
    """Maps lookup keys to tenants with a short-TTL cache.

    Args:
        repository: Storage lookups (TenantRepository or a test double).
        cache: Shared JSON cache; None disables the shared layer.
        ttl: Cache TTL in seconds.
        memory: Optional in-process cache in front of the shared cache.
        strategy: Default strategy for resolve_tenant().
        cache_enabled: False skips both cache layers (local development).
    """

    def __init__(
        self,
        repository: TenantLookup,
        cache: JsonCache | None = None,
        ttl: int = 300,
        memory: MemoryCache | None = None,
        strategy: ResolutionStrategy = ResolutionStrategy.domain,
        cache_enabled: bool = True,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._ttl = ttl
        self._memory = memory
        self.strategy = strategy
        self._cache_enabled = cache_enabled

    @staticmethod
    def cache_key(strategy: ResolutionStrategy, lookup_key: str) -> str:
        return f"resolve:{strategy.value}:{lookup_key.strip().lower()}"

    async def resolve_tenant(
        self, lookup_key: str, strategy: ResolutionStrategy | None = None
    ) -> Tenant:
        """Resolve an active tenant by lookup key.

        Raises:
            TenantNotFound: If no active, non-deleted tenant matches.
        """
        strategy = strategy or self.strategy
        key = self.cache_key(strategy, lookup_key)

        if self._cache_enabled:
            cached = await self._from_cache(key)
            if cached is not None:
                return cached

        tenant = await self._lookup(strategy, lookup_key.strip().lower())
        if tenant is None or not tenant.is_available:
            tenant_resolutions_total.labels(source="miss").inc()
            logger.info("tenant_not_found", strategy=strategy.value, lookup_key=lookup_key)
            raise TenantNotFound(lookup_key)

        tenant_resolutions_total.labels(source="storage").inc()
        if self._cache_enabled:
            if self._memory is not None:
                self._memory.set(key, tenant)
            if self._cache is not None:
                await self._cache.set_json(key, tenant.to_cache(), self._ttl)
        return tenant

    async def _from_cache(self, key: str) -> Tenant | None:
        if self._memory is not None:
            tenant = self._memory.get(key)
            if tenant is not None:
                tenant_resolutions_total.labels(source="memory").inc()
                return tenant
        if self._cache is None:
            return None
        data = await self._cache.get_json(key)
        if not data:
            return None
        try:
            tenant = Tenant.from_cache(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("tenant_cache_entry_invalid", key=key)
            return None
        tenant_resolutions_total.labels(source="cache").inc()
        if self._memory is not None:
            self._memory.set(key, tenant)
        return tenant

    async def _lookup(self, strategy: ResolutionStrategy, key: str) -> Tenant | None:
        if strategy in (ResolutionStrategy.domain, ResolutionStrategy.header):
            return await self._repository.get_by_domain(key)
        return await self._repository.get_by_identifier(key)

    async def forget(self, tenant: Tenant) -> None:
        """Drop every cache entry that could resolve to ``tenant``."""
        keys = [self.cache_key(s, tenant.domain) for s in ResolutionStrategy]
        if tenant.identifier:
            keys.extend(self.cache_key(s, tenant.identifier) for s in ResolutionStrategy)
        if self._memory is not None:
            for key in keys:
                self._memory.delete(key)
        if self._cache is not None:
            await self._cache.delete(*keys)
