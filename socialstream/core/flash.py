"""One-shot flash messages carried across the callback redirect.

The callback redirects the browser to the frontend, which cannot see the
outcome directly. The message is stored in a short-lived signed cookie and
consumed once through GET /auth/flash.
"""

import time

import jwt
from fastapi import Response
from pydantic import BaseModel

from socialstream.core.callback_policy import CallbackOutcome, FlashStyle
from socialstream.core.config import settings

FLASH_COOKIE = "socialstream_flash"

# Name of the error bag the auth forms render
ERROR_BAG = "socialstream"

# Flash messages survive one redirect; 5 minutes is plenty
_FLASH_TTL = 300


class Flash(BaseModel):
    """Pending flash payload.

    Attributes:
        banner: Page-wide notification, if any.
        banner_style: "success" or "danger" when banner is set.
        errors: Error messages keyed by error bag name.
    """

    banner: str | None = None
    banner_style: str | None = None
    errors: dict[str, list[str]] = {}


def flash_from_outcome(outcome: CallbackOutcome) -> Flash | None:
    """Build the flash payload for a callback outcome.

    Returns:
        Flash to attach, or None when the outcome carries no message.
    """
    if outcome.style is None or outcome.message is None:
        return None
    if outcome.style is FlashStyle.ERRORS:
        return Flash(errors={ERROR_BAG: [outcome.message]})
    return Flash(banner=outcome.message, banner_style=outcome.style.value)


def create_flash_cookie(flash: Flash, secret: str) -> str:
    """Sign a flash payload for storage in a cookie."""
    payload = {
        "flash": flash.model_dump(),
        "exp": int(time.time()) + _FLASH_TTL,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def read_flash_cookie(cookie_value: str | None, secret: str) -> Flash | None:
    """Decode a flash cookie.

    Returns:
        The Flash, or None when the cookie is missing, expired or tampered.
    """
    if not cookie_value:
        return None
    try:
        payload = jwt.decode(cookie_value, secret, algorithms=["HS256"])
        return Flash.model_validate(payload["flash"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def set_flash_cookie(response: Response, flash: Flash) -> None:
    """Attach a flash payload to a response."""
    response.set_cookie(
        key=FLASH_COOKIE,
        value=create_flash_cookie(flash, settings.auth_secret.get_secret_value()),
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=_FLASH_TTL,
        path="/",
    )


def clear_flash_cookie(response: Response) -> None:
    """Remove the flash cookie once consumed."""
    response.delete_cookie(key=FLASH_COOKIE, path="/")
