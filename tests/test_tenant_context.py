"""Tests for per-unit-of-work tenant context isolation."""

from __future__ import annotations

import asyncio

import pytest

from src.tenancy.core.exceptions import NoContextTenant, TenantMismatch
from src.tenancy.core.tenant import (
    TenantContext,
    bind_context,
    current_tenant_public_id,
    reset_context,
    tenant_scope,
)
from tests.doubles import make_tenant


class TestTenantContext:
    def test_get_without_tenant_raises(self):
        with pytest.raises(NoContextTenant):
            TenantContext().get()

    def test_set_get_clear(self):
        tenant = make_tenant()
        ctx = TenantContext()
        assert ctx.has_tenant() is False
        ctx.set(tenant)
        assert ctx.get() is tenant
        ctx.clear()
        assert ctx.has_tenant() is False

    def test_ensure_matching_tenant(self):
        tenant = make_tenant()
        assert TenantContext(tenant).ensure(tenant.public_id) is tenant

    def test_ensure_mismatch_raises(self):
        ctx = TenantContext(make_tenant())
        with pytest.raises(TenantMismatch) as exc_info:
            ctx.ensure("someone-else")
        assert exc_info.value.status_code == 403


class TestBoundContext:
    def test_no_bound_context_has_no_tenant(self):
        assert current_tenant_public_id() is None

    def test_bind_and_reset(self):
        tenant = make_tenant()
        ctx = TenantContext(tenant)
        token = bind_context(ctx)
        try:
            assert current_tenant_public_id() == tenant.public_id
        finally:
            reset_context(token)
        assert current_tenant_public_id() is None

    def test_scope_is_released_after_block(self):
        tenant = make_tenant()
        with tenant_scope(tenant) as ctx:
            assert ctx.get() is tenant
            assert current_tenant_public_id() == tenant.public_id
        assert current_tenant_public_id() is None

    @pytest.mark.asyncio
    async def test_concurrent_units_of_work_are_isolated(self):
        tenant_a = make_tenant(domain="a.com")
        tenant_b = make_tenant(domain="b.com", name="Tenant B")

        async def unit_of_work(tenant):
            with tenant_scope(tenant):
                await asyncio.sleep(0)
                first = current_tenant_public_id()
                await asyncio.sleep(0.01)
                second = current_tenant_public_id()
                return first, second

        results = await asyncio.gather(*(unit_of_work(t) for t in (tenant_a, tenant_b) * 5))

        expected = [tenant_a.public_id, tenant_b.public_id] * 5
        assert [r[0] for r in results] == expected
        assert [r[1] for r in results] == expected

    @pytest.mark.asyncio
    async def test_child_task_cannot_leak_into_parent(self):
        async def child():
            bind_context(TenantContext(make_tenant()))
            return current_tenant_public_id()

        assert await asyncio.create_task(child()) is not None
        assert current_tenant_public_id() is None
