"""Tenant error taxonomy.

Every tenant-facing failure is a TenantError carrying the HTTP status code
and message it renders as. The application registers a single exception
handler that turns any TenantError into a ``{"message": ...}`` response.
"""

from __future__ import annotations

from typing import Any


class TenantError(Exception):
    """Base class for tenant resolution and configuration errors.

    Attributes:
        message: Human-readable message rendered to the caller.
        status_code: HTTP status code the error maps to.
    """

    status_code: int = 500
    default_message: str = "Tenant error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict[str, Any]:
        return {"message": self.message}


class TenantNotFound(TenantError):
    """No active, non-deleted tenant matches the resolution key."""

    status_code = 404
    default_message = "Tenant not found."

    def __init__(self, lookup_key: str | None = None, message: str | None = None) -> None:
        self.lookup_key = lookup_key
        super().__init__(message)


class TenantMismatch(TenantError):
    """The context tenant disagrees with the tenant the caller expected."""

    status_code = 403
    default_message = "Tenant mismatch."

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__()


class NoContextTenant(TenantError):
    """TenantContext.get() was called before set() in this unit of work."""

    status_code = 500
    default_message = "No tenant has been set for the current context."


class InvalidConfigShape(TenantError):
    """A persisted tenant config payload could not be decoded."""

    status_code = 500
    default_message = "Invalid tenant config payload."


class UntrustedRequest(TenantError):
    """An internal-only endpoint was called by an untrusted client."""

    status_code = 403
    default_message = "Unauthorized."


class FeatureDisabled(TenantError):
    """The endpoint is switched off by a feature flag."""

    status_code = 404
    default_message = "Not found."


class DuplicateTenant(TenantError):
    """A tenant with the same domain or identifier already exists."""

    status_code = 409
    default_message = "A tenant with this domain already exists."


class UnknownTemplate(TenantError):
    """Provisioning referenced a template no seeder is registered for."""

    status_code = 422

    def __init__(self, template: str) -> None:
        self.template = template
        super().__init__(f"Unknown tenant template: {template}")


class InvalidLookupKey(TenantError):
    """The request carries no usable tenant lookup key."""

    status_code = 400
    default_message = "A tenant domain is required."
