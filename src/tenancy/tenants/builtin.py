"""Built-in seeders, pipes and providers, and the startup registry wiring.

All contributors are registered explicitly in build_registries(); there is
no discovery at runtime, so iteration order is fixed at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from src.tenancy.config import Settings
from src.tenancy.tenants.config_value import Visibility
from src.tenancy.tenants.pipeline import ConfigurationPipe, ConfigurationPipeline, ResolvedConfig
from src.tenancy.tenants.providers import ConfigProvider, ConfigProviderRegistry
from src.tenancy.tenants.runtime import RuntimeConfig
from src.tenancy.tenants.schemas import Tenant
from src.tenancy.tenants.seeders import Seeder, SeederRegistry, SharedSeeder
from src.tenancy.tenants.tiers import TierService

logger = structlog.get_logger(__name__)

PUBLIC = Visibility.public
PROTECTED = Visibility.protected
PRIVATE = Visibility.private


def _frontend_domain(domain: str) -> str:
    return domain[4:] if domain.startswith("api.") else domain


# ── Seeders ─────────────────────────────────────────────────────────────────


class CoreApplicationSeeder(Seeder):
    """App identity, URLs and mail sender for every standard template."""

    priority = 10

    def __init__(self, default_app_name: str) -> None:
        self._default_app_name = default_app_name

    def get_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        domain = base_config.get("domain", "")
        app_name = base_config.get("app_name") or self._default_app_name
        frontend_domain = _frontend_domain(domain)

        config: dict[str, Any] = {
            "app_name": app_name,
            "app_url": f"https://{domain}",
            "frontend_url": f"https://{frontend_domain}",
            "mail_from_name": f"{app_name} Support",
            "mail_from_address": f"support@{frontend_domain}",
        }
        for optional in ("capacitor_scheme", "assets", "meta"):
            if optional in base_config:
                config[optional] = base_config[optional]
        return config

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {
            "app_name": PUBLIC,
            "app_url": PUBLIC,
            "frontend_url": PROTECTED,
            "mail_from_name": PRIVATE,
            "mail_from_address": PRIVATE,
            "capacitor_scheme": PROTECTED,
            "assets": PUBLIC,
            "meta": PUBLIC,
        }


class IsolatedDatabaseSeeder(Seeder):
    """Dedicated database and cache namespace for the isolated template."""

    priority = 20

    def get_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        slug = (base_config.get("identifier") or base_config.get("domain", "tenant")).replace(".", "_").replace("-", "_")
        return {
            "db_database": f"tenant_{slug}",
            "db_username": f"tenant_{slug}",
            "cache_prefix": f"tenant_{slug}_",
        }

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {"db_database": PRIVATE, "db_username": PRIVATE, "cache_prefix": PRIVATE}


class PusherSharedSeeder(SharedSeeder):
    """Broadcasting credentials; key and cluster are browser-safe."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_shared_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        config: dict[str, Any] = {
            "pusher_app_cluster": base_config.get("pusher_app_cluster") or self._settings.PUSHER_APP_CLUSTER,
        }
        for key, default in (
            ("pusher_app_key", self._settings.PUSHER_APP_KEY),
            ("pusher_app_id", self._settings.PUSHER_APP_ID),
            ("pusher_app_secret", self._settings.PUSHER_APP_SECRET),
        ):
            value = base_config.get(key) or default
            if value:
                config[key] = value
        return config

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {
            "pusher_app_key": PUBLIC,
            "pusher_app_cluster": PUBLIC,
            "pusher_app_id": PRIVATE,
            "pusher_app_secret": PRIVATE,
        }


class RecaptchaSharedSeeder(SharedSeeder):
    """reCAPTCHA keys; only the site key is browser-safe."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_shared_config(self, template: str, base_config: dict[str, Any]) -> dict[str, Any]:
        config: dict[str, Any] = {}
        site_key = base_config.get("recaptcha_site_key") or self._settings.RECAPTCHA_SITE_KEY
        secret_key = base_config.get("recaptcha_secret_key") or self._settings.RECAPTCHA_SECRET_KEY
        if site_key:
            config["recaptcha_site_key"] = site_key
        if secret_key:
            config["recaptcha_secret_key"] = secret_key
        return config

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {"recaptcha_site_key": PUBLIC, "recaptcha_secret_key": PRIVATE}


# ── Pipes ───────────────────────────────────────────────────────────────────


class CoreConfigPipe(ConfigurationPipe):
    """App identity, URLs and mail sender."""

    priority = 10

    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        values = {
            "appName": self.get_value(config, "app_name", tenant.name),
            "appUrl": self.get_value(config, "app_url", f"https://{tenant.domain}"),
            "frontendUrl": self.get_value(config, "frontend_url", f"https://{_frontend_domain(tenant.domain)}"),
        }
        return ResolvedConfig(
            values,
            {"appName": PUBLIC, "appUrl": PUBLIC, "frontendUrl": PROTECTED},
        )

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        for key, target in (
            ("app_name", "app.name"),
            ("app_url", "app.url"),
            ("frontend_url", "frontend.url"),
            ("mail_from_name", "mail.from.name"),
            ("mail_from_address", "mail.from.address"),
        ):
            if self.has_value(config, key):
                runtime.set(target, config[key])


class SessionConfigPipe(ConfigurationPipe):
    """Session cookie scoped to the tenant so sessions never cross tenants."""

    priority = 20

    def _cookie(self, tenant: Tenant, config: dict[str, Any]) -> str:
        default = f"{(tenant.identifier or tenant.public_id).replace('-', '_')}_session"
        return self.get_value(config, "session_cookie", default)

    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        values: dict[str, Any] = {"sessionCookie": self._cookie(tenant, config)}
        if self.has_value(config, "session_lifetime"):
            values["sessionLifetime"] = config["session_lifetime"]
        return ResolvedConfig(values, {"sessionCookie": PROTECTED, "sessionLifetime": PROTECTED})

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        runtime.set("session.cookie", self._cookie(tenant, config))
        if self.has_value(config, "session_lifetime"):
            runtime.set("session.lifetime", int(config["session_lifetime"]))


class IntegrationsConfigPipe(ConfigurationPipe):
    """Browser-safe broadcasting and captcha keys."""

    priority = 30

    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        values: dict[str, Any] = {}
        for key, target in (
            ("pusher_app_key", "pusherAppKey"),
            ("pusher_app_cluster", "pusherAppCluster"),
            ("recaptcha_site_key", "recaptchaGoogleSiteKey"),
        ):
            if self.has_value(config, key):
                values[target] = config[key]
        return ResolvedConfig(values, {k: PUBLIC for k in values})

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        for key, target in (
            ("pusher_app_key", "pusher.key"),
            ("pusher_app_cluster", "pusher.cluster"),
            ("recaptcha_site_key", "recaptcha.site_key"),
        ):
            if self.has_value(config, key):
                runtime.set(target, config[key])


DATABASE_KEYS = ("db_host", "db_port", "db_database", "db_username", "db_password")


class DatabaseConfigPipe(ConfigurationPipe):
    """Dedicated database connection for tenants seeded by the isolated template.

    With tiers enabled only tenants holding ``isolated_database`` switch.
    Connection details are private and never resolved into dumps.
    """

    priority = 90

    def __init__(self, tiers: TierService) -> None:
        self._tiers = tiers

    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        return ResolvedConfig()

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        if self._tiers.enabled and not self._tiers.has_feature(tenant, "isolated_database"):
            return
        applied = [key for key in DATABASE_KEYS if self.has_value(config, key)]
        for key in applied:
            runtime.set(f"database.{key[3:]}", config[key])
        if applied:
            logger.debug("tenant_database_switched", tenant=tenant.public_id, keys=applied)


class CacheConfigPipe(ConfigurationPipe):
    """Tenant-scoped cache prefix, so cached entries never cross tenants.

    Tenants without ``dedicated_cache`` (tiers enabled) always get the
    derived ``tenant_{public_id}_`` prefix; others may set ``cache_prefix``
    and ``cache_store``.
    """

    priority = 95

    def __init__(self, tiers: TierService) -> None:
        self._tiers = tiers

    @staticmethod
    def default_prefix(tenant: Tenant) -> str:
        return f"tenant_{tenant.public_id}_"

    def resolve(self, tenant: Tenant, config: dict[str, Any]) -> ResolvedConfig:
        return ResolvedConfig()

    def apply(self, tenant: Tenant, config: dict[str, Any], runtime: RuntimeConfig) -> None:
        if self._tiers.enabled and not self._tiers.has_feature(tenant, "dedicated_cache"):
            runtime.set("cache.prefix", self.default_prefix(tenant))
            return
        if self.has_value(config, "cache_store"):
            runtime.set("cache.store", config["cache_store"])
        runtime.set("cache.prefix", self.get_value(config, "cache_prefix", self.default_prefix(tenant)))


# ── Providers ───────────────────────────────────────────────────────────────


class CoreTenantConfigProvider(ConfigProvider):
    """URLs, identity and integration keys the frontend needs."""

    priority = 100

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_config(self, tenant: Tenant) -> dict[str, Any]:
        config = tenant.effective_config()
        identity = tenant.parent or tenant
        values: dict[str, Any] = {
            "apiUrl": config.get("app_url", f"https://{tenant.domain}"),
            "appUrl": config.get("frontend_url", f"https://{_frontend_domain(tenant.domain)}"),
            "appName": config.get("app_name", tenant.name),
            "tenantId": identity.public_id,
            "tenantName": identity.name,
            "internalApiUrl": config.get("internal_api_url", self._settings.APP_URL),
        }
        for key, target in (
            ("pusher_app_key", "pusherAppKey"),
            ("pusher_app_cluster", "pusherAppCluster"),
            ("recaptcha_site_key", "recaptchaGoogleSiteKey"),
        ):
            if config.has(key):
                values[target] = config.get(key)
        return values

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {
            "apiUrl": PUBLIC,
            "appUrl": PUBLIC,
            "appName": PUBLIC,
            "tenantId": PUBLIC,
            "tenantName": PUBLIC,
            "pusherAppKey": PUBLIC,
            "pusherAppCluster": PUBLIC,
            "recaptchaGoogleSiteKey": PUBLIC,
            "internalApiUrl": PROTECTED,
        }


class AuthTenantConfigProvider(ConfigProvider):
    """Login form settings and session parameters."""

    priority = 50

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_config(self, tenant: Tenant) -> dict[str, Any]:
        config = tenant.effective_config()
        return {
            "socialiteProviders": config.get("socialite_providers", []),
            "passwordMinLength": config.get("password_min_length", self._settings.PASSWORD_MIN_LENGTH),
            "sessionCookie": config.get("session_cookie", self._settings.SESSION_COOKIE),
            "sessionLifetime": config.get("session_lifetime", self._settings.SESSION_LIFETIME),
        }

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {
            "socialiteProviders": PUBLIC,
            "passwordMinLength": PUBLIC,
            "sessionCookie": PROTECTED,
            "sessionLifetime": PROTECTED,
        }


class TierFeaturesProvider(ConfigProvider):
    """Tier label and unlocked feature flags."""

    priority = 150

    def __init__(self, tiers: TierService) -> None:
        self._tiers = tiers

    def get_config(self, tenant: Tenant) -> dict[str, Any]:
        return {
            "tier": self._tiers.get_tier(tenant),
            "features": sorted(self._tiers.features(tenant)),
        }

    def get_visibility(self) -> dict[str, Visibility | str]:
        return {"tier": PUBLIC, "features": PUBLIC}


# ── Registry wiring ─────────────────────────────────────────────────────────

STANDARD_TEMPLATES = ("basic", "isolated")


@dataclass
class TenantRegistries:
    seeders: SeederRegistry
    pipeline: ConfigurationPipeline
    providers: ConfigProviderRegistry
    tiers: TierService


def build_registries(settings: Settings) -> TenantRegistries:
    """Register every built-in contributor. Called once at startup."""
    seeders = SeederRegistry()
    core_seeder = CoreApplicationSeeder(settings.APP_NAME)
    for template in STANDARD_TEMPLATES:
        seeders.register(template, core_seeder)
    seeders.register("isolated", IsolatedDatabaseSeeder())
    seeders.register_shared(PusherSharedSeeder(settings))
    seeders.register_shared(RecaptchaSharedSeeder(settings))

    tiers = TierService(settings)

    pipeline = ConfigurationPipeline()
    pipeline.register(CoreConfigPipe())
    pipeline.register(SessionConfigPipe())
    pipeline.register(IntegrationsConfigPipe())
    pipeline.register(DatabaseConfigPipe(tiers))
    pipeline.register(CacheConfigPipe(tiers))

    providers = ConfigProviderRegistry()
    providers.register(AuthTenantConfigProvider(settings))
    providers.register(CoreTenantConfigProvider(settings))
    providers.register(TierFeaturesProvider(tiers))

    return TenantRegistries(seeders=seeders, pipeline=pipeline, providers=providers, tiers=tiers)
