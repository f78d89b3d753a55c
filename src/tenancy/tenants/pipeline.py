"""Request-time configuration pipeline.

Pipes derive presentation values from a tenant's persisted config. They run
in ascending priority and later pipes may overwrite earlier ones. Nothing a
pipe produces is written back to storage.

Two entry points:
- resolve(): pure derivation of ``{values, visibility}`` for dumps
- apply(): writes tenant overrides into the request's RuntimeConfig
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.tenancy.core.tenant import TenantContext
from src.tenancy.tenants.config_value import ConfigValue, Visibility
from src.tenancy.tenants.runtime import RuntimeConfig
from src.tenancy.tenants.schemas import Tenant

logger = structlog.get_logger(__name__)

@dataclass
class ResolvedConfig:
    """Output of a pipe or of a whole pipeline pass."""

    values: dict[str, Any] = field(default_factory=dict)
    visibility: dict[str, Visibility] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "values": dict(self.values),
            "visibility": {k: Visibility.coerce(v).value for k, v in self.visibility.items()},
        }

    def to_config_value(self) -> ConfigValue:
        return ConfigValue(self.values, self.visibility)


class ConfigurationPipe(ABC):
    """Base class for request-time pipes."""

    priority: int = 50

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        """Derive values from the running config without side effects."""

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        """Write overrides into the request's runtime config. No-op by default."""

    # ── Helpers ─────────────────────────────────────────────────────────────

    @staticmethod
    def has_value(config: dict[str, Any], key: str) -> bool:
        return config.get(key) not in (None, "")

    @staticmethod
    def get_value(config: dict[str, Any], key: str, default: Any = None) -> Any:
        value = config.get(key)
        return default if value in (None, "") else value


class ConfigurationPipeline:
    """Priority-ordered pipes, registered once at startup."""

    def __init__(self) -> None:
        self._pipes: list[ConfigurationPipe] = []

    def register(self, pipe: ConfigurationPipe) -> None:
        if any(p.name == pipe.name for p in self._pipes):
            raise ValueError(f"Pipe already registered: {pipe.name}")
        self._pipes.append(pipe)
        logger.debug("pipe_registered", pipe=pipe.name, priority=pipe.priority)

    def pipes(self) -> list[ConfigurationPipe]:
        return sorted(self._pipes, key=lambda p: p.priority)

    def __len__(self) -> int:
        return len(self._pipes)

    def resolve(self, tenant: Tenant, config_array: dict[str, Any]) -> ResolvedConfig:
        """Run every pipe over ``config_array`` and collect their output.

        Each pipe sees the persisted config with earlier pipe output layered
        on top. The identity of the tenant (the parent for child tenants) is
        always appended as public ``tenantId`` / ``tenantName``.
        """
        running = dict(config_array)
        result = ResolvedConfig()
        for pipe in self.pipes():
            contribution = pipe.resolve(tenant, dict(running))
            result.values.update(contribution.values)
            result.visibility.update(
                {k: Visibility.coerce(v) for k, v in contribution.visibility.items()}
            )
            running.update(contribution.values)

        identity = tenant.parent or tenant
        result.values["tenantId"] = identity.public_id
        result.values["tenantName"] = identity.name
        result.visibility["tenantId"] = Visibility.public
        result.visibility["tenantName"] = Visibility.public
        return result

    def apply(self, context: TenantContext, runtime: RuntimeConfig) -> None:
        """Apply tenant overrides for the context's tenant to ``runtime``.

        Raises:
            NoContextTenant: If the context has no tenant. Callers that can
                run on defaults catch and log it.
        """
        tenant = context.get()
        config = tenant.effective_config().data
        for pipe in self.pipes():
            pipe.apply(tenant, config, runtime)
        logger.debug(
            "tenant_overrides_applied",
            tenant=tenant.public_id,
            overrides=sorted(runtime.overrides()),
        )
