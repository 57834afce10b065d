"""Resolve the provider half of an OAuth callback into an identity.

Validates the state cookie, exchanges the authorization code, fetches the
user's profile and maps it to a ProviderIdentity. Never raises for
provider-side problems: transport and protocol failures become a
ProviderError, state problems an InvalidState.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from fastapi import Request

from socialstream.core.identity import (
    InvalidState,
    ProviderCallbackResult,
    ProviderError,
    ProviderIdentity,
)
from socialstream.core.oauth import get_provider_config, validate_oauth_state_cookie
from socialstream.core.oauth_client import (
    exchange_code_for_tokens,
    fetch_primary_email,
    fetch_userinfo,
)

logger = logging.getLogger(__name__)

# Cookie name for OAuth state/PKCE storage
OAUTH_STATE_COOKIE = "oauth_state"

# Path the state cookie is scoped to
OAUTH_STATE_COOKIE_PATH = "/api/v1/auth/callback"

_AUTH_FAILED = "OAuth authentication failed"
_USERINFO_FAILED = "Could not retrieve user information"


def get_callback_url(request: Request, provider: str) -> str:
    """Build the OAuth callback URL from the request's base URL.

    Args:
        request: FastAPI request.
        provider: Provider name.

    Returns:
        Full callback URL using the request's scheme and host.
    """
    base = str(request.base_url).rstrip("/")
    return f"{base}/api/v1/auth/callback/{provider}"


@dataclass(frozen=True)
class ResolvedCallback:
    """Provider result plus the page the redirect started from.

    Attributes:
        result: Identity, provider error or invalid state.
        previous_url: URL stored in the state cookie at redirect time.
    """

    result: ProviderCallbackResult
    previous_url: str | None = None


def _expires_at(tokens: Mapping[str, Any]) -> datetime | None:
    expires_in = tokens.get("expires_in")
    if expires_in is None:
        return None
    try:
        return datetime.now(UTC) + timedelta(seconds=int(expires_in))
    except (TypeError, ValueError):
        return None


def map_provider_user(
    provider: str,
    userinfo: Mapping[str, Any],
    tokens: Mapping[str, Any],
) -> ProviderIdentity | None:
    """Map a provider's raw profile to a ProviderIdentity.

    Args:
        provider: Provider name.
        userinfo: Raw profile as returned by the provider.
        tokens: Token response from the code exchange.

    Returns:
        ProviderIdentity, or None when the profile has no account ID.
    """
    if provider == "github":
        raw_id = userinfo.get("id")
        email = userinfo.get("email")
        nickname = userinfo.get("login")
        avatar = userinfo.get("avatar_url")
    else:
        # OpenID Connect userinfo (Google, LinkedIn)
        raw_id = userinfo.get("sub")
        email = userinfo.get("email")
        # Unverified OIDC emails are not trusted for linking or lookups
        if userinfo.get("email_verified") is False:
            email = None
        nickname = userinfo.get("preferred_username")
        avatar = userinfo.get("picture")

    if raw_id in (None, ""):
        return None

    return ProviderIdentity(
        provider=provider,
        id=str(raw_id),
        email=email.strip().lower() if email else None,
        name=userinfo.get("name"),
        nickname=nickname,
        avatar=avatar,
        token=tokens.get("access_token"),
        secret=tokens.get("oauth_token_secret"),
        refresh_token=tokens.get("refresh_token"),
        expires_at=_expires_at(tokens),
    )


class ProviderUserResolver:
    """Resolves provider callbacks using the signed state cookie.

    Args:
        secret: HMAC secret the state cookie was signed with.
    """

    def __init__(self, secret: str) -> None:
        self.secret = secret

    async def resolve(self, provider: str, request: Request) -> ResolvedCallback:
        """Resolve the callback request for a provider.

        Args:
            provider: Provider name from the route.
            request: The callback request (query params and cookies).

        Returns:
            ResolvedCallback with the identity, error or invalid state.
        """
        params = request.query_params

        error = params.get("error")
        if error:
            return ResolvedCallback(
                ProviderError(
                    description=params.get("error_description") or error,
                    code=error,
                )
            )

        state = params.get("state")
        state_cookie = request.cookies.get(OAUTH_STATE_COOKIE)
        if not state or not state_cookie:
            return ResolvedCallback(InvalidState("Missing OAuth state"))

        oauth_state = validate_oauth_state_cookie(
            cookie_value=state_cookie,
            expected_state=state,
            secret=self.secret,
        )
        if oauth_state is None:
            return ResolvedCallback(InvalidState("Invalid or expired OAuth state"))

        previous_url = oauth_state.previous_url
        config = get_provider_config(provider)

        code = params.get("code")
        if not code:
            return ResolvedCallback(
                ProviderError("Missing authorization code"), previous_url
            )

        try:
            tokens = await exchange_code_for_tokens(
                provider=provider,
                code=code,
                code_verifier=(
                    oauth_state.code_verifier if config.supports_pkce else None
                ),
                redirect_uri=get_callback_url(request, provider),
            )
        except httpx.HTTPError:
            logger.exception("OAuth token exchange failed", extra={"provider": provider})
            return ResolvedCallback(ProviderError(_AUTH_FAILED), previous_url)

        # Some providers report exchange errors with a 200 response
        if tokens.get("error"):
            return ResolvedCallback(
                ProviderError(
                    description=tokens.get("error_description") or _AUTH_FAILED,
                    code=tokens["error"],
                ),
                previous_url,
            )

        access_token = tokens.get("access_token")
        if not access_token:
            return ResolvedCallback(
                ProviderError("OAuth provider did not return access token"),
                previous_url,
            )

        try:
            userinfo = await fetch_userinfo(provider=provider, access_token=access_token)
            if not userinfo.get("email"):
                email = await fetch_primary_email(
                    provider=provider, access_token=access_token
                )
                if email:
                    userinfo = {**userinfo, "email": email}
        except httpx.HTTPError:
            logger.exception("OAuth userinfo fetch failed", extra={"provider": provider})
            return ResolvedCallback(ProviderError(_USERINFO_FAILED), previous_url)

        identity = map_provider_user(provider, userinfo, tokens)
        if identity is None:
            return ResolvedCallback(
                ProviderError("OAuth provider did not return required user info"),
                previous_url,
            )
        return ResolvedCallback(identity, previous_url)
