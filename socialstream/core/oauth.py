"""OAuth utilities: PKCE, state cookies, and provider configuration.

PKCE code verifier/challenge generation, state parameter management via
signed JWT cookies (which also carry the page the user started from), and
OAuth provider endpoint configuration for GitHub, Google and LinkedIn.
"""

import base64
import hashlib
import secrets
import time
from dataclasses import dataclass, field

import jwt

from socialstream.core.config import Settings

# PKCE code verifier length (RFC 7636 allows 43-128)
_VERIFIER_LENGTH = 128

# Characters allowed in PKCE code verifier (RFC 7636 §4.1)
# unreserved = ALPHA / DIGIT / "-" / "." / "_" / "~"
_UNRESERVED_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"

# Default TTL for OAuth state cookie (10 minutes)
_DEFAULT_STATE_TTL = 600


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier.

    RFC 7636 §4.1: 128-character string from unreserved characters.

    Returns:
        Random 128-character code verifier string.
    """
    return "".join(secrets.choice(_UNRESERVED_CHARS) for _ in range(_VERIFIER_LENGTH))


def generate_code_challenge(verifier: str) -> str:
    """Generate a PKCE code challenge from a verifier.

    RFC 7636 §4.2: BASE64URL(SHA256(code_verifier)), no padding.

    Args:
        verifier: PKCE code verifier string.

    Returns:
        Base64url-encoded SHA256 hash without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class OAuthState:
    """Contents of a validated state cookie.

    Attributes:
        code_verifier: PKCE code verifier for the token exchange.
        previous_url: Page the user was on when the redirect started.
    """

    code_verifier: str
    previous_url: str | None = None


def create_oauth_state_cookie(
    *,
    state: str,
    code_verifier: str,
    secret: str,
    previous_url: str | None = None,
    ttl_seconds: int = _DEFAULT_STATE_TTL,
) -> str:
    """Create a signed JWT cookie containing OAuth state and PKCE verifier.

    Stored as a cookie between the initiation redirect and callback.
    Signed with HS256 to prevent tampering.

    Args:
        state: Random state parameter for CSRF protection.
        code_verifier: PKCE code verifier to use in token exchange.
        secret: HMAC signing secret.
        previous_url: Page the user started from (Referer), if known.
        ttl_seconds: Cookie expiry in seconds (default 10 minutes).

    Returns:
        Signed JWT string.
    """
    payload = {
        "state": state,
        "code_verifier": code_verifier,
        "previous_url": previous_url,
        "exp": int(time.time()) + ttl_seconds,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def validate_oauth_state_cookie(
    *,
    cookie_value: str,
    expected_state: str,
    secret: str,
) -> OAuthState | None:
    """Validate an OAuth state cookie.

    Verifies JWT signature, expiry, and state match.

    Args:
        cookie_value: JWT string from the oauth_state cookie.
        expected_state: State parameter from the callback query string.
        secret: HMAC signing secret.

    Returns:
        OAuthState if valid, None if any check fails.
    """
    try:
        payload = jwt.decode(cookie_value, secret, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None

    if payload.get("state") != expected_state:
        return None

    code_verifier = payload.get("code_verifier")
    if not code_verifier:
        return None

    return OAuthState(
        code_verifier=code_verifier,
        previous_url=payload.get("previous_url"),
    )


# ===================================================================
# OAuth Provider Configuration
# ===================================================================


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Configuration for an OAuth provider.

    Attributes:
        authorization_url: Provider's authorization endpoint.
        token_url: Provider's token exchange endpoint.
        userinfo_url: Provider's userinfo endpoint.
        scopes: OAuth scopes to request.
        supports_pkce: Whether to send a PKCE challenge.
        extra_params: Provider-specific authorization parameters.
        emails_url: Endpoint listing the user's emails, for providers
            whose userinfo omits private addresses.
    """

    authorization_url: str
    token_url: str
    userinfo_url: str
    scopes: tuple[str, ...]
    supports_pkce: bool = True
    extra_params: dict[str, str] = field(default_factory=dict)
    emails_url: str | None = None


_PROVIDERS: dict[str, OAuthProviderConfig] = {
    "github": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        authorization_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        userinfo_url="https://api.github.com/user",
        scopes=("read:user", "user:email"),
        supports_pkce=False,
        emails_url="https://api.github.com/user/emails",
    ),
    "google": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        scopes=("openid", "email", "profile"),
        # Offline access for a refresh token
        extra_params={"access_type": "offline", "prompt": "consent"},
    ),
    "linkedin": OAuthProviderConfig(  # nosec B106: token_url is an endpoint, not a password
        authorization_url="https://www.linkedin.com/oauth/v2/authorization",
        token_url="https://www.linkedin.com/oauth/v2/accessToken",
        userinfo_url="https://api.linkedin.com/v2/userinfo",
        scopes=("openid", "email", "profile"),
        supports_pkce=False,
    ),
}


def get_provider_config(provider: str) -> OAuthProviderConfig:
    """Get OAuth configuration for a provider.

    Args:
        provider: Provider name (e.g., "github", "google").

    Returns:
        OAuthProviderConfig for the provider.

    Raises:
        ValueError: If provider is not supported.
    """
    config = _PROVIDERS.get(provider)
    if config is None:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)
    return config


def get_provider_credentials(settings: Settings, provider: str) -> tuple[str, str]:
    """Get the client ID and secret configured for a provider.

    Args:
        settings: Application settings.
        provider: Provider name.

    Returns:
        (client_id, client_secret) tuple.

    Raises:
        ValueError: If the provider is not enabled or has no client ID.
    """
    if provider not in settings.socialstream_providers or provider not in _PROVIDERS:
        msg = f"Unsupported OAuth provider: {provider}"
        raise ValueError(msg)

    client_id = getattr(settings, f"{provider}_client_id")
    client_secret = getattr(settings, f"{provider}_client_secret").get_secret_value()
    if not client_id:
        msg = f"OAuth provider {provider} is not configured"
        raise ValueError(msg)
    return client_id, client_secret
