"""Tests for visibility-filtered tenant dumps and the all-tenants cache."""

from __future__ import annotations

import json

import pytest

from src.tenancy.core.exceptions import TenantNotFound
from src.tenancy.core.redis import JsonCache
from src.tenancy.tenants.config_value import ConfigValue
from src.tenancy.tenants.dump import (
    ALL_TENANTS_CACHE_KEY,
    DumpMode,
    TenantDumpService,
    allows_public_api,
)
from src.tenancy.tenants.pipeline import ConfigurationPipeline
from src.tenancy.tenants.providers import ConfigProviderRegistry
from tests.doubles import FakeRedis, InMemoryTenantRepository, make_tenant


def _service(repository=None, redis=None) -> TenantDumpService:
    return TenantDumpService(
        ConfigProviderRegistry(),
        ConfigurationPipeline(),
        repository=repository,
        cache=JsonCache(redis) if redis is not None else None,
        cache_ttl=60,
    )


def _config(public_flag: object = None) -> ConfigValue:
    config = ConfigValue(
        {"app_name": "A", "internal_api": "http://x", "secret_key": "s"},
        {"app_name": "public", "internal_api": "protected", "secret_key": "private"},
    )
    if public_flag is not None:
        config.set("allow_public_config_api", public_flag)
    return config


class TestSerialize:
    def test_protected_dump_excludes_private_keys(self):
        tenant = make_tenant(config=_config())
        dump = _service().serialize(tenant, DumpMode.protected)

        assert dump["config"] == {
            "app_name": "A",
            "internal_api": "http://x",
            "__visibility": {"app_name": "public", "internal_api": "protected"},
        }
        assert dump["id"] == tenant.public_id
        assert dump["domain"] == "a.com"
        assert dump["parent_id"] is None
        assert dump["created_at"] == "2026-01-01T00:00:00+00:00"
        assert dump["updated_at"] is None

    def test_public_dump_only_public_keys(self):
        tenant = make_tenant(config=_config(public_flag=True))
        dump = _service().serialize(tenant, "public")
        assert dump["config"] == {"app_name": "A", "__visibility": {"app_name": "public"}}

    @pytest.mark.parametrize("flag", [None, False, "true", 1])
    def test_public_dump_requires_boolean_opt_in(self, flag):
        tenant = make_tenant(config=_config(public_flag=flag))
        assert allows_public_api(tenant) is False
        with pytest.raises(TenantNotFound):
            _service().serialize(tenant, DumpMode.public)

    def test_public_flag_is_not_inherited_from_parent(self):
        parent = make_tenant(domain="parent.test", config=ConfigValue({"allow_public_config_api": True}))
        child = make_tenant(domain="child.test", parent_id=parent.id, parent=parent)
        with pytest.raises(TenantNotFound):
            _service().serialize(child, DumpMode.public)

    def test_child_dump_inherits_parent_config(self):
        parent = make_tenant(
            domain="parent.test",
            name="Parent",
            config=ConfigValue({"app_name": "P", "theme": "dark"}, {"app_name": "public", "theme": "public"}),
        )
        child = make_tenant(
            domain="child.test",
            parent_id=parent.id,
            parent=parent,
            config=ConfigValue({"app_name": "C"}, {"app_name": "public"}),
        )
        dump = _service().serialize(child, DumpMode.protected)
        assert dump["parent_id"] == parent.public_id
        assert dump["config"]["app_name"] == "C"
        assert dump["config"]["theme"] == "dark"

    def test_serialize_does_not_touch_persisted_config(self):
        tenant = make_tenant(config=_config())
        before = tenant.config.copy()
        _service().serialize(tenant, DumpMode.protected, with_pipeline=True)
        assert tenant.config == before

    def test_pipeline_identity_in_full_dump(self):
        tenant = make_tenant(config=_config())
        dump = _service().serialize(tenant, DumpMode.protected, with_pipeline=True)
        assert dump["config"]["tenantId"] == tenant.public_id
        assert dump["config"]["tenantName"] == "Tenant A"
        assert dump["config"]["__visibility"]["tenantId"] == "public"


class TestDumpAll:
    @pytest.mark.asyncio
    async def test_dump_all_is_cached_for_ttl(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com", config=_config()))
        repository.add(make_tenant(domain="b.com", name="Tenant B"))
        redis = FakeRedis()
        service = _service(repository, redis)

        dumps = await service.dump_all()

        assert sorted(d["domain"] for d in dumps) == ["a.com", "b.com"]
        assert redis.ttls[f"tenant:{ALL_TENANTS_CACHE_KEY}"] == 60
        assert json.loads(redis.store[f"tenant:{ALL_TENANTS_CACHE_KEY}"]) == dumps
        assert all("secret_key" not in d["config"] for d in dumps)

    @pytest.mark.asyncio
    async def test_cached_dump_served_until_forgotten(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        service = _service(repository, FakeRedis())
        await service.dump_all()

        repository.add(make_tenant(domain="b.com"))
        assert len(await service.dump_all()) == 1

        await service.forget_all()
        assert len(await service.dump_all()) == 2

    @pytest.mark.asyncio
    async def test_inactive_tenants_not_dumped(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        repository.add(make_tenant(domain="b.com", is_active=False))
        dumps = await _service(repository).dump_all()
        assert [d["domain"] for d in dumps] == ["a.com"]

    @pytest.mark.asyncio
    async def test_redis_failure_recomputes(self):
        repository = InMemoryTenantRepository()
        repository.add(make_tenant(domain="a.com"))
        redis = FakeRedis()
        redis.fail = True
        dumps = await _service(repository, redis).dump_all()
        assert len(dumps) == 1
