"""OAuth HTTP client: token exchange and userinfo fetching.

HTTP client functions for exchanging authorization codes for tokens and
fetching user info from OAuth providers.
"""

from typing import Any

import httpx

from socialstream.core.config import settings
from socialstream.core.oauth import get_provider_config, get_provider_credentials

# HTTP client timeout for OAuth token exchange and userinfo
_OAUTH_HTTP_TIMEOUT = 10.0

# GitHub answers form-encoded unless JSON is requested explicitly
_JSON_HEADERS = {"Accept": "application/json"}


async def exchange_code_for_tokens(
    *,
    provider: str,
    code: str,
    code_verifier: str | None,
    redirect_uri: str,
) -> dict[str, Any]:
    """Exchange authorization code for OAuth tokens.

    Args:
        provider: Provider name.
        code: Authorization code from callback.
        code_verifier: PKCE code verifier, or None for providers without PKCE.
        redirect_uri: Callback URL used in initiation.

    Returns:
        Token response dict (access_token, refresh_token, expires_in, etc.).

    Raises:
        httpx.HTTPStatusError: If token exchange fails.
    """
    config = get_provider_config(provider)
    client_id, client_secret = get_provider_credentials(settings, provider)

    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    if code_verifier:
        data["code_verifier"] = code_verifier

    async with httpx.AsyncClient() as client:
        resp = await client.post(
            config.token_url,
            data=data,
            headers=_JSON_HEADERS,
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


async def fetch_userinfo(
    *,
    provider: str,
    access_token: str,
) -> dict[str, Any]:
    """Fetch user info from the OAuth provider.

    Args:
        provider: Provider name.
        access_token: OAuth access token.

    Returns:
        Raw user info dict, in the provider's own shape.

    Raises:
        httpx.HTTPStatusError: If userinfo request fails.
    """
    config = get_provider_config(provider)

    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.userinfo_url,
            headers={**_JSON_HEADERS, "Authorization": f"Bearer {access_token}"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result


async def fetch_primary_email(
    *,
    provider: str,
    access_token: str,
) -> str | None:
    """Fetch the verified primary email for providers that hide it.

    GitHub omits private emails from /user; /user/emails lists them.

    Args:
        provider: Provider name.
        access_token: OAuth access token.

    Returns:
        The primary verified email, or None if the provider has no
        emails endpoint or reports none.

    Raises:
        httpx.HTTPStatusError: If the emails request fails.
    """
    config = get_provider_config(provider)
    if config.emails_url is None:
        return None

    async with httpx.AsyncClient() as client:
        resp = await client.get(
            config.emails_url,
            headers={**_JSON_HEADERS, "Authorization": f"Bearer {access_token}"},
            timeout=_OAUTH_HTTP_TIMEOUT,
        )
        resp.raise_for_status()
        emails: list[dict[str, Any]] = resp.json()

    for entry in emails:
        if entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    return None
