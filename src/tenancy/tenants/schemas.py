"""Tenant read model and API request/response schemas."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.tenancy.tenants.config_value import ConfigValue, Visibility


def new_public_id() -> str:
    """Generate an external-safe tenant identifier."""
    return uuid.uuid4().hex


# ── Read model ──────────────────────────────────────────────────────────────


@dataclass
class Tenant:
    """Detached tenant snapshot handed to resolvers, pipes and dumps.

    ``parent`` is loaded one level deep so the effective config can be
    computed without another storage round trip.
    """

    id: str
    public_id: str
    name: str
    domain: str
    identifier: str | None = None
    parent_id: str | None = None
    is_active: bool = True
    config: ConfigValue = field(default_factory=ConfigValue)
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    parent: Tenant | None = None

    @property
    def is_available(self) -> bool:
        return self.is_active and self.deleted_at is None

    @property
    def parent_public_id(self) -> str | None:
        return self.parent.public_id if self.parent is not None else None

    def effective_config(self) -> ConfigValue:
        """Parent config with this tenant's config layered on top."""
        if self.parent is None:
            return self.config.copy()
        return self.parent.config.merge(self.config)

    def to_cache(self) -> dict[str, Any]:
        """JSON-safe form used by the shared resolver cache."""
        return {
            "id": self.id,
            "public_id": self.public_id,
            "name": self.name,
            "domain": self.domain,
            "identifier": self.identifier,
            "parent_id": self.parent_id,
            "is_active": self.is_active,
            "config": self.config.to_dict(),
            "deleted_at": _iso(self.deleted_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "parent": self.parent.to_cache() if self.parent is not None else None,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> Tenant:
        parent = data.get("parent")
        return cls(
            id=data["id"],
            public_id=data["public_id"],
            name=data["name"],
            domain=data["domain"],
            identifier=data.get("identifier"),
            parent_id=data.get("parent_id"),
            is_active=data.get("is_active", True),
            config=ConfigValue.from_dict(data.get("config") or {}),
            deleted_at=_parse(data.get("deleted_at")),
            created_at=_parse(data.get("created_at")),
            updated_at=_parse(data.get("updated_at")),
            parent=cls.from_cache(parent) if parent else None,
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# ── API schemas ─────────────────────────────────────────────────────────────


class TenantCreate(BaseModel):
    """Request schema for provisioning a new tenant."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Human-readable tenant name",
        examples=["Acme"],
    )
    domain: str = Field(
        ...,
        min_length=3,
        max_length=255,
        pattern=r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$",
        description="Host name the tenant is served on",
        examples=["acme.example.com"],
    )
    identifier: str | None = Field(
        default=None,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="Slug used by the subdomain and path strategies",
    )
    template: str = Field(default="basic", description="Seeder template name")
    tier: str | None = Field(default=None, max_length=50, description="Subscription tier label", examples=["premium"])
    parent_id: str | None = Field(default=None, description="Parent tenant public id")
    config: dict[str, Any] = Field(default_factory=dict, description="Base config passed to seeders")


class ConfigEntryUpdate(BaseModel):
    """One key to set on a tenant config."""

    value: Any = None
    visibility: Visibility | None = None


class TenantConfigUpdate(BaseModel):
    """Admin update of a tenant's persisted config."""

    entries: dict[str, ConfigEntryUpdate] = Field(default_factory=dict)
    forget: list[str] = Field(default_factory=list)


class TenantSummary(BaseModel):
    """Admin-facing tenant summary."""

    id: str
    name: str
    domain: str
    identifier: str | None = None
    parent_id: str | None = None
    is_active: bool = True
    tier: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> TenantSummary:
        return cls(
            id=tenant.public_id,
            name=tenant.name,
            domain=tenant.domain,
            identifier=tenant.identifier,
            parent_id=tenant.parent_public_id,
            is_active=tenant.is_active,
            tier=tenant.config.tier,
            created_at=tenant.created_at,
        )
