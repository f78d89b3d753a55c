"""Internal-request trust gate.

A request is internal only when both checks pass:
- the client IP is in TENANT_PRIVACY_TRUSTED_IPS (or the IP check is disabled)
- the SSR key header matches TENANT_PRIVACY_SSR_API_KEY (or the key check is disabled)
"""

from __future__ import annotations

import hmac

from starlette.requests import Request

from src.tenancy.config import Settings


class RequestPrivacy:
    """Decides whether a request comes from a trusted internal caller."""

    def __init__(self, settings: Settings) -> None:
        self._trusted_ips = frozenset(settings.trusted_ips())
        self._key_header = settings.TENANT_PRIVACY_SSR_KEY_HEADER
        self._api_key = settings.TENANT_PRIVACY_SSR_API_KEY
        self._disable_ip_check = settings.TENANT_PRIVACY_DISABLE_IP_CHECK
        self._disable_key_check = settings.TENANT_PRIVACY_DISABLE_KEY_CHECK

    def is_trusted_ip(self, request: Request) -> bool:
        if self._disable_ip_check:
            return True
        host = request.client.host if request.client else None
        return host is not None and host in self._trusted_ips

    def has_valid_api_key(self, request: Request) -> bool:
        if self._disable_key_check:
            return True
        presented = request.headers.get(self._key_header)
        # An unset key never matches
        if not self._api_key or not presented:
            return False
        return hmac.compare_digest(presented.encode(), self._api_key.encode())

    def is_internal(self, request: Request) -> bool:
        return self.is_trusted_ip(request) and self.has_valid_api_key(request)
