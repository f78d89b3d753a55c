"""Subscription tiers and the features they unlock."""

from __future__ import annotations

from src.tenancy.config import Settings
from src.tenancy.tenants.schemas import Tenant

TIER_ORDER = ("basic", "premium", "enterprise")

TIER_FEATURES: dict[str, frozenset[str]] = {
    "basic": frozenset({"custom_branding"}),
    "premium": frozenset({"custom_branding", "custom_domain", "social_login", "dedicated_cache"}),
    "enterprise": frozenset(
        {
            "custom_branding",
            "custom_domain",
            "social_login",
            "dedicated_cache",
            "sso",
            "isolated_database",
            "audit_log",
        }
    ),
}

ALL_FEATURES = frozenset().union(*TIER_FEATURES.values())


class TierService:
    """Answers tier and feature questions for a tenant.

    When tiers are disabled every tenant has every feature.
    """

    def __init__(self, settings: Settings) -> None:
        self.enabled = settings.TENANT_ENABLE_TIERS
        self.default_tier = settings.TENANT_DEFAULT_TIER

    def get_tier(self, tenant: Tenant) -> str:
        tier = tenant.config.tier or (tenant.parent.config.tier if tenant.parent else None)
        return tier if tier in TIER_FEATURES else self.default_tier

    def features(self, tenant: Tenant) -> frozenset[str]:
        if not self.enabled:
            return ALL_FEATURES
        return TIER_FEATURES.get(self.get_tier(tenant), frozenset())

    def has_feature(self, tenant: Tenant, feature: str) -> bool:
        return feature in self.features(tenant)

    def meets_minimum_tier(self, tenant: Tenant, minimum: str) -> bool:
        if not self.enabled:
            return True
        return self.compare_tiers(self.get_tier(tenant), minimum) >= 0

    @staticmethod
    def compare_tiers(a: str, b: str) -> int:
        """Negative if ``a`` ranks below ``b``, zero if equal, positive above.

        Raises:
            ValueError: If either tier is unknown.
        """
        return TIER_ORDER.index(a) - TIER_ORDER.index(b)
