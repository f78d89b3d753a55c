"""Tenant config container with per-key visibility tiers.

A ConfigValue holds a ``key -> JSON value`` map and a lockstep
``key -> Visibility`` map. A key without a visibility entry is private and
never leaves the backend. Persisted form is ``{config, visibility, tier}``;
the legacy flat map with an inline ``__visibility`` key is still accepted on
load.
"""

from __future__ import annotations

import copy
import json
from enum import Enum
from typing import Any

from src.tenancy.core.exceptions import InvalidConfigShape

LEGACY_VISIBILITY_KEY = "__visibility"
PERSISTED_KEYS = frozenset({"config", "visibility", "tier"})


class Visibility(str, Enum):
    """Exposure tier of a config key."""

    public = "public"  # browser
    protected = "protected"  # server-side rendering
    private = "private"  # backend only

    @classmethod
    def coerce(cls, value: Any) -> Visibility:
        """Map a raw tier value to a Visibility; unknown values become private."""
        if isinstance(value, Visibility):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.private


PROTECTED_TIERS = frozenset({Visibility.public, Visibility.protected})


class ConfigValue:
    """Typed tenant configuration with visibility tiers.

    Args:
        config: Initial key/value map.
        visibility: Initial key/tier map. Unknown tiers are stored as private.
        tier: Optional subscription tier label.
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        visibility: dict[str, Any] | None = None,
        tier: str | None = None,
    ) -> None:
        self._data: dict[str, Any] = dict(config or {})
        self._visibility: dict[str, Visibility] = {
            key: Visibility.coerce(tier_value) for key, tier_value in (visibility or {}).items()
        }
        self.tier = tier

    # ── Accessors ───────────────────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any, visibility: Visibility | str | None = None) -> None:
        """Set a value, optionally updating its visibility.

        Without a visibility the existing tier is kept, so a brand new key
        stays private.
        """
        self._data[key] = value
        if visibility is not None:
            self._visibility[key] = Visibility.coerce(visibility)

    def has(self, key: str) -> bool:
        return key in self._data

    def forget(self, key: str) -> None:
        self._data.pop(key, None)
        self._visibility.pop(key, None)

    def get_visibility(self, key: str) -> Visibility:
        return self._visibility.get(key, Visibility.private)

    def set_visibility(self, key: str, visibility: Visibility | str) -> None:
        self._visibility[key] = Visibility.coerce(visibility)

    def keys(self) -> list[str]:
        return list(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def data(self) -> dict[str, Any]:
        """Shallow copy of the key/value map."""
        return dict(self._data)

    @property
    def visibility(self) -> dict[str, Visibility]:
        """Shallow copy of the explicit key/tier map."""
        return dict(self._visibility)

    # ── Filtered views ──────────────────────────────────────────────────────

    def get_public_config(self) -> dict[str, Any]:
        """Return keys whose tier is public."""
        return {
            key: value
            for key, value in self._data.items()
            if self.get_visibility(key) is Visibility.public
        }

    def get_protected_config(self) -> dict[str, Any]:
        """Return keys whose tier is public or protected."""
        return {
            key: value
            for key, value in self._data.items()
            if self.get_visibility(key) in PROTECTED_TIERS
        }

    # ── Combination ─────────────────────────────────────────────────────────

    def merge(self, other: ConfigValue) -> ConfigValue:
        """Return a new ConfigValue with ``other`` layered on top of this one."""
        merged = ConfigValue(
            {**self._data, **other._data},
            {**self._visibility, **other._visibility},
            other.tier if other.tier is not None else self.tier,
        )
        return merged

    def copy(self) -> ConfigValue:
        return ConfigValue(copy.deepcopy(self._data), dict(self._visibility), self.tier)

    # ── Serialization ───────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted form ``{config, visibility, tier}``."""
        return {
            "config": copy.deepcopy(self._data),
            "visibility": {key: tier.value for key, tier in self._visibility.items()},
            "tier": self.tier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConfigValue:
        """Build a ConfigValue from its persisted form.

        Raises:
            InvalidConfigShape: If ``config`` or ``visibility`` is not a mapping.
        """
        config = data.get("config") or {}
        visibility = data.get("visibility") or {}
        if not isinstance(config, dict) or not isinstance(visibility, dict):
            raise InvalidConfigShape()
        tier = data.get("tier")
        return cls(copy.deepcopy(config), visibility, str(tier) if tier is not None else None)

    @classmethod
    def from_stored(cls, raw: Any) -> ConfigValue | None:
        """Decode a stored payload in either the current or the legacy format.

        Accepts a mapping or a JSON string. Empty payloads decode to None.

        Raises:
            InvalidConfigShape: If the payload is not JSON or not a mapping.
        """
        if raw is None or raw == "" or raw == "0":
            return None
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise InvalidConfigShape() from exc
        if not isinstance(raw, dict):
            raise InvalidConfigShape()

        if LEGACY_VISIBILITY_KEY in raw:
            data = dict(raw)
            visibility = data.pop(LEGACY_VISIBILITY_KEY) or {}
            if not isinstance(visibility, dict):
                raise InvalidConfigShape()
            return cls(data, visibility)

        # A flat map may hold a tenant key named "config"
        if isinstance(raw.get("config"), dict) and set(raw) <= PERSISTED_KEYS:
            return cls.from_dict(raw)

        return cls(raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConfigValue):
            return NotImplemented
        return (
            self._data == other._data
            and self._visibility == other._visibility
            and self.tier == other.tier
        )

    def __repr__(self) -> str:
        return f"ConfigValue(keys={sorted(self._data)}, tier={self.tier!r})"
