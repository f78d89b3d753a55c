"""Tests for tenant resolution and lookup key extraction.

Covers:
- Cache hit on the second lookup within the TTL (one storage lookup)
- Shared Redis cache populated with the resolver TTL
- TenantNotFound for unknown, inactive and soft-deleted tenants
- Redis failures falling through to storage
- Cache disabled mode and cache invalidation
- Strategy-specific lookup key extraction
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from starlette.requests import Request

from src.tenancy.config import ResolutionStrategy, Settings
from src.tenancy.core.exceptions import TenantNotFound
from src.tenancy.core.redis import JsonCache, MemoryCache
from src.tenancy.tenants.config_value import ConfigValue
from src.tenancy.tenants.resolver import LookupKeyExtractor, TenantResolver
from tests.doubles import FakeRedis, InMemoryTenantRepository, make_tenant


# ── Helpers ──────────────────────────────────────────────────────────────────


def _resolver(repository, redis=None, memory=True, **kwargs) -> TenantResolver:
    return TenantResolver(
        repository,
        cache=JsonCache(redis) if redis is not None else None,
        ttl=300,
        memory=MemoryCache(300, 10) if memory else None,
        **kwargs,
    )


def _request(host: str = "a.com", path: str = "/", headers: dict[str, str] | None = None) -> Request:
    raw_headers = [(b"host", host.encode())]
    for key, value in (headers or {}).items():
        raw_headers.append((key.lower().encode(), value.encode()))
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "query_string": b"",
        "headers": raw_headers,
        "client": ("127.0.0.1", 1234),
        "server": (host, 80),
    }
    return Request(scope)


# ── Resolution ───────────────────────────────────────────────────────────────


class TestResolveTenant:
    @pytest.mark.asyncio
    async def test_second_lookup_within_ttl_hits_cache(self):
        repository = InMemoryTenantRepository()
        tenant = repository.add(make_tenant(domain="a.com"))
        resolver = _resolver(repository, FakeRedis())

        first = await resolver.resolve_tenant("a.com")
        second = await resolver.resolve_tenant("a.com")

        assert first.public_id == second.public_id == tenant.public_id
        assert repository.lookup_calls == 1

    @pytest.mark.asyncio
    async def test_shared_cache_serves_other_processes(self):
        repository = InMemoryTenantRepository()
        tenant = repository.add(
            make_tenant(domain="a.com", config=ConfigValue({"app_name": "A"}, {"app_name": "public"}))
        )
        redis = FakeRedis()
        await _resolver(repository, redis).resolve_tenant("a.com")

        # A second process has its own memory cache but shares Redis
        other = _resolver(repository, redis)
        cached = await other.resolve_tenant("a.com")

        assert repository.lookup_calls == 1
        assert cached.public_id == tenant.public_id
        assert cached.config == tenant.config
        assert redis.ttls["tenant:resolve:domain:a.com"] == 300
        assert json.loads(redis.store["tenant:resolve:domain:a.com"])["domain"] == "a.com"

    @pytest.mark.asyncio
    async def test_lookup_key_is_case_insensitive(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        resolver = _resolver(repository)
        await resolver.resolve_tenant("A.COM")
        await resolver.resolve_tenant("a.com")
        assert repository.lookup_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_domain_raises(self):
        resolver = _resolver(InMemoryTenantRepository())
        with pytest.raises(TenantNotFound):
            await resolver.resolve_tenant("nobody.test")

    @pytest.mark.asyncio
    async def test_misses_are_not_cached(self):
        repository = InMemoryTenantRepository()
        resolver = _resolver(repository, FakeRedis())
        with pytest.raises(TenantNotFound):
            await resolver.resolve_tenant("late.test")
        repository.add(make_tenant(domain="late.test"))
        tenant = await resolver.resolve_tenant("late.test")
        assert tenant.domain == "late.test"

    @pytest.mark.asyncio
    async def test_inactive_tenant_raises(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com", is_active=False))
        with pytest.raises(TenantNotFound):
            await _resolver(repository).resolve_tenant("a.com")

    @pytest.mark.asyncio
    async def test_soft_deleted_tenant_raises(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com", deleted_at=datetime.now(timezone.utc)))
        with pytest.raises(TenantNotFound):
            await _resolver(repository).resolve_tenant("a.com")

    @pytest.mark.asyncio
    async def test_redis_failure_falls_through_to_storage(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        redis = FakeRedis()
        redis.fail = True
        resolver = _resolver(repository, redis, memory=False)

        tenant = await resolver.resolve_tenant("a.com")

        assert tenant.domain == "a.com"
        assert repository.lookup_calls == 1

    @pytest.mark.asyncio
    async def test_cache_disabled_always_hits_storage(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        resolver = _resolver(repository, FakeRedis(), cache_enabled=False)
        await resolver.resolve_tenant("a.com")
        await resolver.resolve_tenant("a.com")
        assert repository.lookup_calls == 2

    @pytest.mark.asyncio
    async def test_forget_drops_cached_entries(self):
        repository = InMemoryTenantRepository()
        tenant = repository.add(make_tenant(domain="a.com", identifier="acme"))
        redis = FakeRedis()
        resolver = _resolver(repository, redis)
        await resolver.resolve_tenant("a.com")

        await resolver.forget(tenant)
        await resolver.resolve_tenant("a.com")

        assert repository.lookup_calls == 2

    @pytest.mark.asyncio
    async def test_identifier_strategies_use_identifier_lookup(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="acme.example.com", identifier="acme"))
        resolver = _resolver(repository, strategy=ResolutionStrategy.subdomain)
        tenant = await resolver.resolve_tenant("acme")
        assert tenant.domain == "acme.example.com"
        with pytest.raises(TenantNotFound):
            await resolver.resolve_tenant("acme.example.com")


# ── Memory cache ─────────────────────────────────────────────────────────────


class TestMemoryCache:
    def test_evicts_oldest_entry_when_full(self):
        cache = MemoryCache(ttl=300, max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert len(cache) == 2

    def test_expired_entries_are_dropped(self):
        cache = MemoryCache(ttl=0)
        cache.set("a", 1)
        assert cache.get("a") is None


# ── Lookup key extraction ────────────────────────────────────────────────────


class TestLookupKeyExtractor:
    def test_domain_strategy_uses_host_without_port(self):
        extractor = LookupKeyExtractor(Settings())
        assert extractor.extract(_request(host="Acme.Test:8080")) == "acme.test"

    def test_domain_header_override_only_for_internal_requests(self):
        extractor = LookupKeyExtractor(Settings())
        request = _request(host="ssr.internal", headers={"X-Tenant-Domain": "a.com"})
        assert extractor.extract(request, is_internal=False) == "ssr.internal"
        assert extractor.extract(request, is_internal=True) == "a.com"

    @pytest.mark.parametrize(
        "header", ["https://b.com", "https://B.com:8443/dashboard?x=1", "b.com:8443", " b.com "]
    )
    def test_domain_header_override_accepts_urls(self, header):
        extractor = LookupKeyExtractor(Settings())
        request = _request(host="ssr.internal", headers={"X-Tenant-Domain": header})
        assert extractor.extract(request, is_internal=True) == "b.com"

    def test_header_strategy(self):
        extractor = LookupKeyExtractor(Settings(TENANT_RESOLUTION_STRATEGY="header"))
        assert extractor.extract(_request(headers={"X-Tenant-Domain": "b.com"})) == "b.com"
        assert extractor.extract(_request()) is None

    def test_subdomain_strategy(self):
        extractor = LookupKeyExtractor(
            Settings(TENANT_RESOLUTION_STRATEGY="subdomain", TENANT_BASE_DOMAIN="example.com")
        )
        assert extractor.extract(_request(host="acme.example.com")) == "acme"
        assert extractor.extract(_request(host="api.acme.example.com")) == "acme"
        assert extractor.extract(_request(host="example.com")) is None
        assert extractor.extract(_request(host="acme.other.com")) is None

    def test_path_strategy(self):
        extractor = LookupKeyExtractor(Settings(TENANT_RESOLUTION_STRATEGY="path", TENANT_PATH_SEGMENT=1))
        assert extractor.extract(_request(path="/t/acme/dashboard")) == "acme"
        assert extractor.extract(_request(path="/t")) is None
