"""Results of the provider half of an OAuth callback.

Resolving a callback against the provider yields exactly one of:
- ProviderIdentity: the provider authenticated the user
- ProviderError: the provider (or the token exchange) reported a failure
- InvalidState: the state parameter did not match the signed state cookie
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ProviderIdentity:
    """Identity returned by a provider after a successful exchange.

    Attributes:
        provider: Provider name (e.g., "github").
        id: Provider's unique user identifier.
        email: Email reported by the provider, if any.
        name: Display name.
        nickname: Handle/login.
        avatar: Avatar URL.
        token: OAuth access token.
        secret: OAuth 1 token secret (None for OAuth 2 providers).
        refresh_token: OAuth refresh token.
        expires_at: Access token expiry.
    """

    provider: str
    id: str
    email: str | None = None
    name: str | None = None
    nickname: str | None = None
    avatar: str | None = None
    token: str | None = None
    secret: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class ProviderError:
    """The provider redirected back with an error, or the exchange failed.

    Attributes:
        description: Human-readable description shown to the user.
        code: Provider error code (e.g., "access_denied"), if any.
    """

    description: str
    code: str | None = None


@dataclass(frozen=True)
class InvalidState:
    """The OAuth state check failed.

    Attributes:
        reason: Why the check failed (missing cookie, mismatch, expired).
    """

    reason: str


ProviderCallbackResult = ProviderIdentity | ProviderError | InvalidState
