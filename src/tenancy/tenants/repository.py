"""Async persistence for tenants.

Uses the session_factory callable pattern: every method opens its own
session from the factory, so the repository is safe to share across
requests. Methods return detached Tenant snapshots, never ORM instances.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.tenancy.tenants.config_value import ConfigValue
from src.tenancy.tenants.models import TenantModel
from src.tenancy.tenants.schemas import Tenant, new_public_id

# ── Model conversion ────────────────────────────────────────────────────────


def _model_to_tenant(model: TenantModel, with_parent: bool = True) -> Tenant:
    """Convert TenantModel to a detached Tenant snapshot."""
    parent = None
    if with_parent and model.parent is not None:
        parent = _model_to_tenant(model.parent, with_parent=False)
    return Tenant(
        id=str(model.id),
        public_id=model.public_id,
        name=model.name,
        domain=model.domain,
        identifier=model.identifier,
        parent_id=str(model.parent_id) if model.parent_id else None,
        is_active=bool(model.is_active),
        config=model.config.copy() if model.config is not None else ConfigValue(),
        deleted_at=model.deleted_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        parent=parent,
    )


def _available():
    return (TenantModel.is_active.is_(True), TenantModel.deleted_at.is_(None))


# Retries resolution lookups on transient connection errors.
_lookup_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    retry=retry_if_exception_type((OperationalError, InterfaceError)),
    reraise=True,
)


# ── Repository ──────────────────────────────────────────────────────────────


class TenantRepository:
    """Async CRUD operations for tenants.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Lookups ─────────────────────────────────────────────────────────────

    @_lookup_retry
    async def get_by_domain(self, domain: str) -> Tenant | None:
        """Get an active, non-deleted tenant by exact domain."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(TenantModel.domain == domain, *_available())
            result = await session.execute(stmt)
            model = result.unique().scalar_one_or_none()
            return _model_to_tenant(model) if model is not None else None
        return None

    @_lookup_retry
    async def get_by_identifier(self, identifier: str) -> Tenant | None:
        """Get an active, non-deleted tenant by identifier slug."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(TenantModel.identifier == identifier, *_available())
            result = await session.execute(stmt)
            model = result.unique().scalar_one_or_none()
            return _model_to_tenant(model) if model is not None else None
        return None

    async def get_by_public_id(self, public_id: str) -> Tenant | None:
        """Get a non-deleted tenant by public id, active or not."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(
                TenantModel.public_id == public_id,
                TenantModel.deleted_at.is_(None),
            )
            result = await session.execute(stmt)
            model = result.unique().scalar_one_or_none()
            return _model_to_tenant(model) if model is not None else None
        return None

    async def list_active(self) -> list[Tenant]:
        """List all active, non-deleted tenants ordered by creation."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(*_available()).order_by(TenantModel.created_at)
            result = await session.execute(stmt)
            return [_model_to_tenant(m) for m in result.unique().scalars().all()]
        return []

    async def exists(self, domain: str, identifier: str | None = None) -> bool:
        """Check whether a domain or identifier is already taken (deleted rows included)."""
        async for session in self._session_factory():
            clauses = [TenantModel.domain == domain]
            if identifier:
                clauses.append(TenantModel.identifier == identifier)
            stmt = select(TenantModel.id).where(or_(*clauses))
            result = await session.execute(stmt)
            return result.first() is not None
        return False

    # ── Mutations ───────────────────────────────────────────────────────────

    async def create(
        self,
        name: str,
        domain: str,
        config: ConfigValue,
        identifier: str | None = None,
        parent: Tenant | None = None,
    ) -> Tenant:
        """Insert a tenant with its seeded config."""
        async for session in self._session_factory():
            model = TenantModel(
                id=uuid.uuid4(),
                public_id=new_public_id(),
                name=name,
                domain=domain,
                identifier=identifier,
                parent_id=uuid.UUID(parent.id) if parent is not None else None,
                is_active=True,
                config=config,
            )
            session.add(model)
            await session.commit()
            await session.refresh(model, attribute_names=["created_at", "parent"])
            return _model_to_tenant(model)
        raise RuntimeError("Session factory yielded no session")

    async def update_config(self, public_id: str, config: ConfigValue) -> Tenant | None:
        """Replace a tenant's persisted config."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(
                TenantModel.public_id == public_id,
                TenantModel.deleted_at.is_(None),
            )
            result = await session.execute(stmt)
            model = result.unique().scalar_one_or_none()
            if model is None:
                return None
            model.config = config
            await session.commit()
            await session.refresh(model)
            return _model_to_tenant(model)
        return None

    async def soft_delete(self, public_id: str) -> Tenant | None:
        """Mark a tenant deleted and inactive."""
        async for session in self._session_factory():
            stmt = select(TenantModel).where(
                TenantModel.public_id == public_id,
                TenantModel.deleted_at.is_(None),
            )
            result = await session.execute(stmt)
            model = result.unique().scalar_one_or_none()
            if model is None:
                return None
            model.deleted_at = datetime.now(timezone.utc)
            model.is_active = False
            await session.commit()
            await session.refresh(model)
            return _model_to_tenant(model)
        return None
