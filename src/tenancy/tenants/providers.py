"""Dump-time config providers.

Providers inject derived, non-persisted fields (URLs, feature flags, ...)
into every outward-facing tenant representation. They run in ascending
priority and each contribution is layered on top of the previous ones, so
the provider with the higher priority number wins a conflict.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog

from src.tenancy.tenants.config_value import ConfigValue, Visibility
from src.tenancy.tenants.schemas import Tenant

logger = structlog.get_logger(__name__)


class ConfigProvider(ABC):
    """Contributes ``{config, visibility}`` for a tenant at dump time."""

    priority: int = 50

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def get_config(self, tenant: Tenant) -> dict[str, Any]:
        """Return the fields this provider adds."""

    def get_visibility(self) -> dict[str, Visibility | str]:
        """Tiers for the provided fields; fields without one are private."""
        return {}


class ConfigProviderRegistry:
    """Priority-ordered providers, registered once at startup."""

    def __init__(self) -> None:
        self._providers: list[ConfigProvider] = []

    def register(self, provider: ConfigProvider) -> None:
        if any(p.name == provider.name for p in self._providers):
            raise ValueError(f"Provider already registered: {provider.name}")
        self._providers.append(provider)
        logger.debug("provider_registered", provider=provider.name, priority=provider.priority)

    def providers(self) -> list[ConfigProvider]:
        return sorted(self._providers, key=lambda p: p.priority)

    def __len__(self) -> int:
        return len(self._providers)

    def enhance(self, tenant: Tenant, config: ConfigValue) -> ConfigValue:
        """Return a copy of ``config`` with every provider's fields merged in."""
        enhanced = config.copy()
        for provider in self.providers():
            declared = provider.get_visibility()
            for key, value in provider.get_config(tenant).items():
                enhanced.set(key, value, Visibility.coerce(declared.get(key, Visibility.private)))
        return enhanced
