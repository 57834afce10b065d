"""OAuth authentication endpoints.

Redirect-to-provider and handle-provider-callback for GitHub, Google and
LinkedIn, plus the flash-message and logout endpoints the frontend uses
after the callback redirect.

The callback never answers with an error status for provider or policy
problems: every outcome is a redirect to a frontend route with a flash
message attached.
"""

import logging
import secrets
from typing import Annotated, Literal
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError
from starlette.responses import Response

from socialstream.api.deps import (
    CallbackResolver,
    DbSession,
    OptionalUser,
    ProviderResolver,
)
from socialstream.core.auth import clear_auth_cookie, set_auth_cookie
from socialstream.core.callback_policy import CallbackOutcome, Route, SessionState
from socialstream.core.config import settings
from socialstream.core.errors import ValidationError
from socialstream.core.flash import (
    FLASH_COOKIE,
    Flash,
    clear_flash_cookie,
    flash_from_outcome,
    read_flash_cookie,
    set_flash_cookie,
)
from socialstream.core.oauth import (
    OAuthProviderConfig,
    create_oauth_state_cookie,
    generate_code_challenge,
    generate_code_verifier,
    get_provider_config,
    get_provider_credentials,
)
from socialstream.core.rate_limiting import limiter
from socialstream.core.responses import DataResponse
from socialstream.models import User
from socialstream.services.provider_user_resolver import (
    OAUTH_STATE_COOKIE,
    OAUTH_STATE_COOKIE_PATH,
    get_callback_url,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# State cookie lifetime: the user has 10 minutes to consent
_STATE_COOKIE_MAX_AGE = 600


def _validated_provider(provider: str) -> tuple[OAuthProviderConfig, str]:
    """Resolve provider config and client ID, or raise 400."""
    try:
        config = get_provider_config(provider)
        client_id, _ = get_provider_credentials(settings, provider)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    return config, client_id


def route_url(route: Route) -> str:
    """Absolute frontend URL for a callback route."""
    paths = {
        Route.HOME: settings.home_path,
        Route.LOGIN: settings.login_path,
        Route.REGISTER: settings.register_path,
        Route.PROFILE: settings.profile_path,
    }
    return settings.route_url(paths[route])


def previous_page_url(request: Request, from_page: str | None) -> str | None:
    """The page the OAuth flow started from.

    The frontend names the page explicitly with ``?from=``. Cross-origin
    navigations only carry the frontend origin in Referer, so the header is
    a fallback for callers that do not pass it.
    """
    if from_page == "register":
        return settings.route_url(settings.register_path)
    if from_page == "login":
        return settings.route_url(settings.login_path)
    return request.headers.get("referer")


def render_outcome(outcome: CallbackOutcome) -> RedirectResponse:
    """Turn a callback outcome into the redirect the browser follows.

    Attaches the flash cookie, issues the session cookie when the outcome
    logged a user in, and always clears the one-shot state cookie.
    """
    redirect = RedirectResponse(url=route_url(outcome.route), status_code=307)

    flash = flash_from_outcome(outcome)
    if flash is not None:
        set_flash_cookie(redirect, flash)

    if outcome.login is not None:
        set_auth_cookie(redirect, outcome.login.token, max_age=outcome.login.max_age)

    redirect.delete_cookie(key=OAUTH_STATE_COOKIE, path=OAUTH_STATE_COOKIE_PATH)
    return redirect


# ===================================================================
# GET /auth/providers/{provider}: Redirect to provider
# ===================================================================


@router.get("/providers/{provider}")
@limiter.limit(lambda: settings.rate_limit_oauth_redirect)
async def redirect_to_provider(
    provider: str,
    request: Request,
    from_page: Annotated[
        Literal["login", "register"] | None, Query(alias="from")
    ] = None,
) -> Response:
    """Redirect to the OAuth provider's authorization URL.

    Generates state (CSRF) and a PKCE verifier, remembers the page the
    user came from (``?from=`` or Referer) so the callback can tell a
    registration attempt from a login, stores all three in a signed cookie
    and redirects to the provider.
    """
    config, client_id = _validated_provider(provider)

    code_verifier = generate_code_verifier()
    state = secrets.token_urlsafe(32)
    previous_url = previous_page_url(request, from_page)

    state_cookie = create_oauth_state_cookie(
        state=state,
        code_verifier=code_verifier,
        secret=settings.auth_secret.get_secret_value(),
        previous_url=previous_url,
    )

    params = {
        "client_id": client_id,
        "redirect_uri": get_callback_url(request, provider),
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
    }
    if config.supports_pkce:
        params["code_challenge"] = generate_code_challenge(code_verifier)
        params["code_challenge_method"] = "S256"
    params.update(config.extra_params)

    auth_url = f"{config.authorization_url}?{urlencode(params)}"

    redirect = RedirectResponse(url=auth_url, status_code=307)
    redirect.set_cookie(
        key=OAUTH_STATE_COOKIE,
        value=state_cookie,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=_STATE_COOKIE_MAX_AGE,
        path=OAUTH_STATE_COOKIE_PATH,
    )
    return redirect


# ===================================================================
# GET /auth/callback/{provider}: Handle provider callback
# ===================================================================


@router.get("/callback/{provider}")
@limiter.limit(lambda: settings.rate_limit_oauth_callback)
async def handle_provider_callback(
    provider: str,
    request: Request,
    db: DbSession,
    user: OptionalUser,
    provider_resolver: ProviderResolver,
    resolver: CallbackResolver,
) -> Response:
    """Handle the provider callback after user consent.

    Resolves the provider result, applies the linking/login policy,
    commits, and redirects to the frontend with a flash message.
    """
    _validated_provider(provider)

    # Captured up front: a rollback expires the ORM instance
    user_id = user.id if user is not None else None

    resolved = await provider_resolver.resolve(provider, request)
    session = SessionState(user=user, previous_url=resolved.previous_url)

    try:
        outcome = await resolver.resolve_callback(provider, resolved.result, session)
        await db.commit()
    except IntegrityError:
        # A concurrent callback linked the same identity (or took the same
        # email) between lookup and insert. Resolve again against the
        # committed state.
        await db.rollback()
        logger.warning(
            "Concurrent OAuth callback collided, resolving again",
            extra={"provider": provider},
        )
        if user_id is not None:
            user = await db.get(User, user_id)
        session = SessionState(user=user, previous_url=resolved.previous_url)
        outcome = await resolver.resolve_callback(provider, resolved.result, session)
        await db.commit()

    logger.info(
        "OAuth callback resolved",
        extra={
            "provider": provider,
            "kind": outcome.kind.value,
            "error": outcome.error.value if outcome.error else None,
        },
    )
    return render_outcome(outcome)


# ===================================================================
# GET /auth/flash: Consume pending flash message
# ===================================================================


@router.get("/flash")
async def consume_flash(request: Request, response: Response) -> DataResponse[Flash | None]:
    """Return the pending flash message (if any) and clear it."""
    flash = read_flash_cookie(
        request.cookies.get(FLASH_COOKIE),
        settings.auth_secret.get_secret_value(),
    )
    clear_flash_cookie(response)
    return DataResponse(data=flash)


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout", status_code=204)
async def logout() -> Response:
    """End the session by clearing the session cookie."""
    response = Response(status_code=204)
    clear_auth_cookie(response)
    return response
