"""Tests for the internal caller trust gate."""

from __future__ import annotations

import pytest
from starlette.requests import Request

from src.tenancy.config import Settings
from src.tenancy.core.privacy import RequestPrivacy


def _request(client_host: str = "127.0.0.1", key: str | None = None) -> Request:
    headers = [(b"host", b"a.com")]
    if key is not None:
        headers.append((b"x-ssr-key", key.encode()))
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": b"",
            "headers": headers,
            "client": (client_host, 1234),
        }
    )


@pytest.fixture
def privacy() -> RequestPrivacy:
    return RequestPrivacy(Settings(TENANT_PRIVACY_SSR_API_KEY="secret"))


class TestRequestPrivacy:
    def test_trusted_ip_with_valid_key(self, privacy):
        assert privacy.is_internal(_request(key="secret")) is True

    def test_untrusted_ip(self, privacy):
        request = _request(client_host="203.0.113.9", key="secret")
        assert privacy.is_trusted_ip(request) is False
        assert privacy.is_internal(request) is False

    @pytest.mark.parametrize("key", [None, "", "wrong"])
    def test_missing_or_wrong_key(self, privacy, key):
        assert privacy.is_internal(_request(key=key)) is False

    def test_unset_configured_key_never_matches(self):
        privacy = RequestPrivacy(Settings(TENANT_PRIVACY_SSR_API_KEY=""))
        assert privacy.has_valid_api_key(_request(key="")) is False

    def test_custom_trusted_ips(self):
        privacy = RequestPrivacy(
            Settings(TENANT_PRIVACY_SSR_API_KEY="secret", TENANT_PRIVACY_TRUSTED_IPS="10.0.0.5")
        )
        assert privacy.is_internal(_request(client_host="10.0.0.5", key="secret")) is True
        assert privacy.is_internal(_request(key="secret")) is False

    def test_checks_can_be_disabled(self):
        privacy = RequestPrivacy(
            Settings(TENANT_PRIVACY_DISABLE_IP_CHECK=True, TENANT_PRIVACY_DISABLE_KEY_CHECK=True)
        )
        assert privacy.is_internal(_request(client_host="203.0.113.9")) is True
