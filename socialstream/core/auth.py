"""Session cookie helpers: JWT creation, validation and cookie management.

Pipeline:
- create_jwt / set_auth_cookie: session issuance after a successful login
- decode_session_token: reads the user ID back from the cookie
- JwtSessionLogin: the SessionLogin used by the OAuth callback
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from socialstream.core.callback_policy import LoginResponse, SessionLogin
from socialstream.core.config import settings
from socialstream.models.user import User

logger = logging.getLogger(__name__)

# Default JWT expiration: 1 hour
_DEFAULT_EXPIRATION = timedelta(hours=1)


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or _DEFAULT_EXPIRATION),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_session_token(token: str, secret: str) -> uuid.UUID | None:
    """Validate a session JWT and return its subject.

    Verifies signature, expiry, audience and issuer.

    Args:
        token: JWT string from the session cookie.
        secret: HMAC signing secret.

    Returns:
        User UUID if the token is valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def set_auth_cookie(
    response: Response,
    token: str,
    max_age: int | None = None,
) -> None:
    """Set httpOnly JWT cookie on response.

    Security: httpOnly prevents XSS cookie theft. Secure flag and SameSite
    are configured via settings for environment-appropriate security.

    Args:
        response: FastAPI response object.
        token: JWT token string.
        max_age: Cookie lifetime in seconds. Defaults to the JWT lifetime.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=max_age or int(_DEFAULT_EXPIRATION.total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Remove the session cookie."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        domain=settings.auth_cookie_domain or None,
        secure=settings.auth_cookie_secure,
        httponly=True,
        samesite=settings.auth_cookie_samesite,
    )


class JwtSessionLogin(SessionLogin):
    """Logs users in by issuing a session JWT.

    A remembered session lives for ``remember_session_days``; otherwise
    the default one-hour lifetime applies.
    """

    def __init__(self, secret: str, remember_days: int) -> None:
        self.secret = secret
        self.remember_days = remember_days

    async def login(self, user: User, remember: bool) -> LoginResponse:
        lifetime = (
            timedelta(days=self.remember_days) if remember else _DEFAULT_EXPIRATION
        )
        token = create_jwt(
            user_id=str(user.id),
            secret=self.secret,
            expires_delta=lifetime,
        )
        logger.info(
            "Issued session",
            extra={"user_id": str(user.id), "remember": remember},
        )
        return LoginResponse(
            user_id=str(user.id),
            token=token,
            max_age=int(lifetime.total_seconds()),
            remember=remember,
        )
