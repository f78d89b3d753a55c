"""In-memory test doubles shared by the test modules.

Provides:
- InMemoryTenantRepository: TenantRepository double that counts lookups
- FakeRedis: minimal async Redis double (get/set with ex/delete/ping)
- make_tenant(): detached Tenant with sensible defaults
"""

from __future__ import annotations

import dataclasses
import uuid
from datetime import datetime, timezone
from typing import Any

from src.tenancy.tenants.config_value import ConfigValue
from src.tenancy.tenants.schemas import Tenant, new_public_id

SSR_KEY = "test-ssr-key"


# ── In-Memory Test Doubles ──────────────────────────────────────────────────


class InMemoryTenantRepository:
    """In-memory TenantRepository for testing without database."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}
        self.lookup_calls = 0

    def add(self, tenant: Tenant) -> Tenant:
        self._tenants[tenant.id] = tenant
        return tenant

    def _with_parent(self, tenant: Tenant) -> Tenant:
        parent = self._tenants.get(tenant.parent_id) if tenant.parent_id else None
        if parent is not None:
            parent = dataclasses.replace(parent, parent=None)
        return dataclasses.replace(tenant, config=tenant.config.copy(), parent=parent)

    def _available(self) -> list[Tenant]:
        return [t for t in self._tenants.values() if t.is_active and t.deleted_at is None]

    async def get_by_domain(self, domain: str) -> Tenant | None:
        self.lookup_calls += 1
        for tenant in self._available():
            if tenant.domain == domain:
                return self._with_parent(tenant)
        return None

    async def get_by_identifier(self, identifier: str) -> Tenant | None:
        self.lookup_calls += 1
        for tenant in self._available():
            if tenant.identifier == identifier:
                return self._with_parent(tenant)
        return None

    async def get_by_public_id(self, public_id: str) -> Tenant | None:
        for tenant in self._tenants.values():
            if tenant.public_id == public_id and tenant.deleted_at is None:
                return self._with_parent(tenant)
        return None

    async def list_active(self) -> list[Tenant]:
        return [self._with_parent(t) for t in self._available()]

    async def exists(self, domain: str, identifier: str | None = None) -> bool:
        return any(
            t.domain == domain or (identifier and t.identifier == identifier)
            for t in self._tenants.values()
        )

    async def create(
        self,
        name: str,
        domain: str,
        config: ConfigValue,
        identifier: str | None = None,
        parent: Tenant | None = None,
    ) -> Tenant:
        tenant = Tenant(
            id=str(uuid.uuid4()),
            public_id=new_public_id(),
            name=name,
            domain=domain,
            identifier=identifier,
            parent_id=parent.id if parent else None,
            config=config.copy(),
            created_at=datetime.now(timezone.utc),
        )
        self.add(tenant)
        return self._with_parent(tenant)

    async def update_config(self, public_id: str, config: ConfigValue) -> Tenant | None:
        for tenant_id, tenant in self._tenants.items():
            if tenant.public_id == public_id and tenant.deleted_at is None:
                updated = dataclasses.replace(
                    tenant, config=config.copy(), updated_at=datetime.now(timezone.utc)
                )
                self._tenants[tenant_id] = updated
                return self._with_parent(updated)
        return None

    async def soft_delete(self, public_id: str) -> Tenant | None:
        for tenant_id, tenant in self._tenants.items():
            if tenant.public_id == public_id and tenant.deleted_at is None:
                deleted = dataclasses.replace(
                    tenant, is_active=False, deleted_at=datetime.now(timezone.utc)
                )
                self._tenants[tenant_id] = deleted
                return self._with_parent(deleted)
        return None


class FakeRedis:
    """Async Redis double storing string values; TTLs are recorded, not enforced."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str) -> str | None:
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        self._check()
        return True


def make_tenant(
    domain: str = "a.com",
    config: ConfigValue | None = None,
    name: str = "Tenant A",
    **kwargs: Any,
) -> Tenant:
    """Create a detached Tenant with sensible defaults."""
    return Tenant(
        id=kwargs.pop("id", str(uuid.uuid4())),
        public_id=kwargs.pop("public_id", new_public_id()),
        name=name,
        domain=domain,
        config=config if config is not None else ConfigValue(),
        created_at=kwargs.pop("created_at", datetime(2026, 1, 1, tzinfo=timezone.utc)),
        **kwargs,
    )


