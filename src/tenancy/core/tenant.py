"""Per-unit-of-work tenant context.

A fresh TenantContext is created for every HTTP request, job or CLI
invocation and handed down through dependency injection
(``request.state.tenant_context``). The context is also bound to the
running task through a ContextVar so that logging, metrics and Sentry can
tag events; ContextVar values are copied per asyncio task, so two concurrent
requests never see each other's context.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from src.tenancy.core.exceptions import NoContextTenant, TenantMismatch

if TYPE_CHECKING:
    from src.tenancy.tenants.schemas import Tenant

# ── Tenant Context ──────────────────────────────────────────────────────────


class TenantContext:
    """Holds the resolved tenant for exactly one unit of work."""

    def __init__(self, tenant: Tenant | None = None) -> None:
        self._tenant = tenant

    def set(self, tenant: Tenant) -> None:
        self._tenant = tenant

    def get(self) -> Tenant:
        """Return the tenant for this unit of work.

        Raises:
            NoContextTenant: If no tenant has been set yet.
        """
        if self._tenant is None:
            raise NoContextTenant()
        return self._tenant

    def has_tenant(self) -> bool:
        return self._tenant is not None

    def clear(self) -> None:
        self._tenant = None

    def ensure(self, expected_public_id: str) -> Tenant:
        """Return the tenant, failing if it is not the one the caller expects.

        Raises:
            NoContextTenant: If no tenant has been set yet.
            TenantMismatch: If the context tenant has a different public id.
        """
        tenant = self.get()
        if tenant.public_id != expected_public_id:
            raise TenantMismatch(expected=expected_public_id, actual=tenant.public_id)
        return tenant


_bound_context: contextvars.ContextVar[TenantContext | None] = contextvars.ContextVar(
    "tenant_context", default=None
)


def bind_context(ctx: TenantContext) -> contextvars.Token[TenantContext | None]:
    """Bind a context to the running task. Returns a token for reset."""
    return _bound_context.set(ctx)


def reset_context(token: contextvars.Token[TenantContext | None]) -> None:
    _bound_context.reset(token)


def current_tenant_public_id() -> str | None:
    """Public id of the bound tenant, or None. Used for log and metric tags."""
    ctx = _bound_context.get()
    if ctx is None or not ctx.has_tenant():
        return None
    return ctx.get().public_id


@contextmanager
def tenant_scope(tenant: Tenant | None = None) -> Iterator[TenantContext]:
    """Run a block as its own unit of work with a fresh TenantContext.

    Usage:
        with tenant_scope(tenant) as ctx:
            await do_work(ctx)
    """
    ctx = TenantContext(tenant)
    token = bind_context(ctx)
    try:
        yield ctx
    finally:
        reset_context(token)
