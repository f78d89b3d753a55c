"""Per-request overlay of framework config values.

Pipes write tenant-derived overrides here instead of mutating global
settings; each request gets its own RuntimeConfig, so overrides never leak
between concurrent requests.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.engine import make_url

from src.tenancy.config import Settings


class RuntimeConfig:
    """Framework defaults with request-scoped overrides on top."""

    def __init__(self, defaults: Mapping[str, Any] | None = None) -> None:
        self._defaults = dict(defaults or {})
        self._overrides: dict[str, Any] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> RuntimeConfig:
        database = make_url(settings.DATABASE_URL)
        return cls(
            {
                "database.host": database.host,
                "database.port": database.port,
                "database.database": database.database,
                "database.username": database.username,
                "database.password": database.password,
                "cache.store": "redis",
                "cache.prefix": "tenancy_",
                "app.name": settings.APP_NAME,
                "app.url": settings.APP_URL,
                "frontend.url": settings.FRONTEND_URL,
                "mail.from.name": settings.MAIL_FROM_NAME,
                "mail.from.address": settings.MAIL_FROM_ADDRESS,
                "session.cookie": settings.SESSION_COOKIE,
                "session.lifetime": settings.SESSION_LIFETIME,
                "auth.password_min_length": settings.PASSWORD_MIN_LENGTH,
                "pusher.key": settings.PUSHER_APP_KEY,
                "pusher.cluster": settings.PUSHER_APP_CLUSTER,
                "recaptcha.site_key": settings.RECAPTCHA_SITE_KEY,
            }
        )

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._overrides:
            return self._overrides[key]
        return self._defaults.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._overrides[key] = value

    def overrides(self) -> dict[str, Any]:
        return dict(self._overrides)

    def reset(self) -> None:
        """Drop every override and fall back to the defaults."""
        self._overrides.clear()
