"""Rate limiting configuration using slowapi.

Security: Limits how often a client can start or complete an OAuth
handshake. Signed-in requests are keyed on the session subject (per-user),
everything else on the client IP.

Usage in routers:
    from socialstream.core.rate_limiting import limiter

    @router.get("/providers/{provider}")
    @limiter.limit(lambda: settings.rate_limit_oauth_redirect)
    async def redirect_to_provider(provider: str, request: Request):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from socialstream.core.auth import decode_session_token
from socialstream.core.config import settings


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session cookie: "user:{sub}"
    - No/invalid session cookie: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        user_id = decode_session_token(token, settings.auth_secret.get_secret_value())
        if user_id is not None:
            return f"user:{user_id}"

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# In-memory storage (single instance); set RATELIMIT_STORAGE_URL for Redis
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
