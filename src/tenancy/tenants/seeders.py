"""Provisioning-time config seeders.

Seeders contribute the initial config of a tenant created from a template
("basic", "isolated", ...). They run once, at provisioning, and their merged
output becomes the tenant's persisted ConfigValue.

Merge rules applied by SeederRegistry.build_config():
- per-template seeders run in ascending priority
- a key belongs to the first seeder that contributes it, so the lower
  priority number wins between different priorities
- between seeders of equal priority the earlier registered seeder keeps the
  key and the conflict is logged as a warning
- shared seeders run afterwards and only fill keys that are still absent
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.tenancy.core.exceptions import UnknownTemplate
from src.tenancy.tenants.config_value import ConfigValue, Visibility

logger = structlog.get_logger(__name__)

DEFAULT_PRIORITY = 50


# ── Contracts ───────────────────────────────────────────────────────────────


class Seeder(ABC):
    """Per-template contributor of initial tenant config."""

    priority: int = DEFAULT_PRIORITY

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def get_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        """Return the keys this seeder contributes for ``template``."""

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {}

    def get_priority(self) -> int:
        return self.priority


class SharedSeeder(ABC):
    """Contributor applied to every template; only fills absent keys."""

    priority: int = DEFAULT_PRIORITY

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def get_shared_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        """Return the keys this seeder offers for any template."""

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {}

    def get_priority(self) -> int:
        return self.priority


# ── Generic seeder and builder ──────────────────────────────────────────────


@dataclass
class SeederContribution:
    """Static seeder output: config, visibility and priority."""

    config: dict[str, Any] = field(default_factory=dict)
    visibility: dict[str, Visibility | str] = field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY


ConfigFactory = Callable[[str, dict[str, Any]], dict[str, Any]]


class GenericSeeder(Seeder):
    """Seeder built from a static contribution and an optional factory.

    The factory, when given, is called with ``(template, base_config)`` and
    its result is layered over the static config.
    """

    def __init__(
        self,
        contribution: SeederContribution,
        factory: ConfigFactory | None = None,
        name: str | None = None,
    ) -> None:
        self._contribution = contribution
        self._factory = factory
        self._name = name
        self.priority = contribution.priority

    @property
    def name(self) -> str:
        return self._name or super().name

    def get_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        config = dict(self._contribution.config)
        if self._factory is not None:
            config.update(self._factory(template, base_config))
        return config

    def get_visibility(self) -> dict[str, Visibility | str]:
        return dict(self._contribution.visibility)


class SeederBuilder:
    """Fluent builder for GenericSeeder.

    Usage:
        seeder = (
            SeederBuilder("branding")
            .public("app_name", "Acme")
            .private("mail_password", "secret")
            .priority(20)
            .build()
        )
    """

    def __init__(self, name: str | None = None) -> None:
        self._name = name
        self._config: dict[str, Any] = {}
        self._visibility: dict[str, Visibility | str] = {}
        self._priority = DEFAULT_PRIORITY
        self._factory: ConfigFactory | None = None

    def config(self, values: dict[str, Any]) -> SeederBuilder:
        self._config.update(values)
        return self

    def visibility(self, values: dict[str, Visibility | str]) -> SeederBuilder:
        self._visibility.update(values)
        return self

    def priority(self, priority: int) -> SeederBuilder:
        self._priority = priority
        return self

    def factory(self, factory: ConfigFactory) -> SeederBuilder:
        self._factory = factory
        return self

    def set(self, key: str, value: Any, visibility: Visibility | str | None = None) -> SeederBuilder:
        self._config[key] = value
        if visibility is not None:
            self._visibility[key] = visibility
        return self

    def visible(self, key: str, visibility: Visibility | str) -> SeederBuilder:
        self._visibility[key] = visibility
        return self

    def public(self, key: str, value: Any) -> SeederBuilder:
        return self.set(key, value, Visibility.public)

    def protected(self, key: str, value: Any) -> SeederBuilder:
        return self.set(key, value, Visibility.protected)

    def private(self, key: str, value: Any) -> SeederBuilder:
        return self.set(key, value, Visibility.private)

    def build(self) -> GenericSeeder:
        contribution = SeederContribution(
            config=dict(self._config),
            visibility=dict(self._visibility),
            priority=self._priority,
        )
        return GenericSeeder(contribution, factory=self._factory, name=self._name)


# ── Registry ────────────────────────────────────────────────────────────────


class SeederRegistry:
    """Seeders per template plus shared seeders, in registration order.

    Iteration is sorted by priority with a stable sort, so registration
    order breaks ties.
    """

    def __init__(self) -> None:
        self._seeders: dict[str, list[Seeder]] = {}
        self._shared: list[SharedSeeder] = []

    def register(self, template: str, seeder: Seeder) -> None:
        self._seeders.setdefault(template, []).append(seeder)
        logger.debug(
            "seeder_registered",
            template=template,
            seeder=seeder.name,
            priority=seeder.get_priority(),
        )

    def register_shared(self, seeder: SharedSeeder) -> None:
        self._shared.append(seeder)
        logger.debug("shared_seeder_registered", seeder=seeder.name, priority=seeder.get_priority())

    def templates(self) -> list[str]:
        return sorted(self._seeders)

    def has_template(self, template: str) -> bool:
        return template in self._seeders

    def seeders_for(self, template: str) -> list[Seeder]:
        return sorted(self._seeders.get(template, []), key=lambda s: s.get_priority())

    def shared_seeders(self) -> list[SharedSeeder]:
        return sorted(self._shared, key=lambda s: s.get_priority())

    def build_config(
        self,
        template: str,
        base_config: dict[str, Any] | None = None,
        tier: str | None = None,
    ) -> ConfigValue:
        """Run the seeders for ``template`` and return the merged config.

        Raises:
            UnknownTemplate: If no seeder is registered for the template.
        """
        if not self.has_template(template):
            raise UnknownTemplate(template)

        config: dict[str, Any] = dict(base_config or {})
        visibility: dict[str, Visibility] = {}
        owners: dict[str, Seeder] = {}

        for seeder in self.seeders_for(template):
            contributed = seeder.get_config(template, dict(config))
            declared = seeder.get_visibility()
            for key, value in contributed.items():
                owner = owners.get(key)
                if owner is None:
                    config[key] = value
                    owners[key] = seeder
                    if key in declared:
                        visibility[key] = Visibility.coerce(declared[key])
                    continue
                if owner.get_priority() == seeder.get_priority() and config[key] != value:
                    logger.warning(
                        "seeder_key_conflict",
                        template=template,
                        key=key,
                        kept=owner.name,
                        ignored=seeder.name,
                        priority=seeder.get_priority(),
                    )
            # Tiers declared for keys the seeder did not return (e.g. base config)
            for key, tier_value in declared.items():
                if key not in contributed and key not in visibility:
                    visibility[key] = Visibility.coerce(tier_value)

        for shared in self.shared_seeders():
            contributed = shared.get_shared_config(template, dict(config))
            declared = shared.get_visibility()
            for key, value in contributed.items():
                if key in config:
                    continue
                config[key] = value
                if key in declared and key not in visibility:
                    visibility[key] = Visibility.coerce(declared[key])

        logger.info(
            "tenant_config_seeded",
            template=template,
            keys=len(config),
            seeders=[s.name for s in self.seeders_for(template)],
        )
        return ConfigValue(config, visibility, tier)
