"""Tests for rate limiting behavior.

Security: The OAuth redirect and callback endpoints are rate limited;
signed-in clients are keyed per user, everything else per IP.
"""

import json
from unittest.mock import MagicMock

from starlette.requests import Request

from socialstream.core.config import settings
from socialstream.core.rate_limiting import (
    _rate_limit_key_func,
    rate_limit_exceeded_handler,
)
from tests.conftest import TEST_USER_ID, create_test_jwt


def _request(cookie: str | None = None) -> Request:
    headers = []
    if cookie is not None:
        headers.append((b"cookie", f"{settings.auth_cookie_name}={cookie}".encode()))
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/auth/callback/github",
        "headers": headers,
        "client": ("203.0.113.7", 50000),
    }
    return Request(scope)


class TestRateLimitKey:
    """Tests for the rate limit key function."""

    def test_valid_session_keys_on_user(self, oauth_settings):  # noqa: ARG002
        key = _rate_limit_key_func(_request(create_test_jwt()))
        assert key == f"user:{TEST_USER_ID}"

    def test_no_session_keys_on_ip(self, oauth_settings):  # noqa: ARG002
        assert _rate_limit_key_func(_request()) == "unauth:203.0.113.7"

    def test_invalid_session_falls_back_to_ip(self, oauth_settings):  # noqa: ARG002
        assert _rate_limit_key_func(_request("garbage")) == "unauth:203.0.113.7"


class TestRateLimitExceededHandler:
    """Tests for the 429 response."""

    def test_returns_429_with_error_envelope(self):
        exc = MagicMock()
        exc.detail = "10 per 1 hour"

        response = rate_limit_exceeded_handler(_request(), exc)
        body = json.loads(response.body.decode())

        assert response.status_code == 429
        assert body["error"]["code"] == "RATE_LIMITED"
        assert "Rate limit exceeded" in body["error"]["message"]

    def test_retry_after_falls_back_to_60(self):
        exc = MagicMock()
        exc.detail = "10 per 1 hour"

        response = rate_limit_exceeded_handler(_request(), exc)

        # "hour" is not a number of seconds
        assert response.headers["Retry-After"] == "60"
