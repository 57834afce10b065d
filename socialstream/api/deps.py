"""Shared dependencies for API endpoints.

Session lookup from the JWT cookie, feature flags, and wiring of the OAuth
callback resolver with its database-backed collaborators.

WHY DEPENDENCY INJECTION:
- Endpoints never construct collaborators themselves
- Tests swap the resolver or the database via dependency_overrides
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from socialstream.core.auth import JwtSessionLogin, decode_session_token
from socialstream.core.callback_policy import OAuthCallbackResolver, RejectInvalidState
from socialstream.core.config import settings
from socialstream.core.database import get_db
from socialstream.core.errors import UnauthorizedError
from socialstream.core.features import Features
from socialstream.models import User
from socialstream.repositories.user_repository import UserRepository
from socialstream.services.connected_accounts import (
    DatabaseAccountLinker,
    DatabaseAccountUpdater,
    DatabaseUserLookup,
)
from socialstream.services.provider_user_resolver import ProviderUserResolver

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_optional_user(request: Request, db: DbSession) -> User | None:
    """Get the signed-in user, if any.

    Any problem with the cookie (missing, expired, bad signature, deleted
    user) means "not signed in" rather than an error.

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session (injected).

    Returns:
        The authenticated User, or None.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        return None

    user_id = decode_session_token(token, settings.auth_secret.get_secret_value())
    if user_id is None:
        return None

    return await UserRepository.get_by_id(db, user_id)


OptionalUser = Annotated[User | None, Depends(get_optional_user)]


async def get_current_user(user: OptionalUser) -> User:
    """Get the signed-in user or fail with 401.

    Raises:
        UnauthorizedError: If the request has no valid session.
    """
    if user is None:
        raise UnauthorizedError()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_features() -> Features:
    """Feature flags for this request."""
    return Features.from_settings(settings)


FeatureFlags = Annotated[Features, Depends(get_features)]


def get_provider_user_resolver() -> ProviderUserResolver:
    """Provider half of the callback (state check, exchange, userinfo)."""
    return ProviderUserResolver(settings.auth_secret.get_secret_value())


ProviderResolver = Annotated[ProviderUserResolver, Depends(get_provider_user_resolver)]


def get_callback_resolver(db: DbSession, features: FeatureFlags) -> OAuthCallbackResolver:
    """Callback policy wired to the request's database session."""
    return OAuthCallbackResolver(
        users=DatabaseUserLookup(db),
        linker=DatabaseAccountLinker(db, features),
        updater=DatabaseAccountUpdater(db),
        session_login=JwtSessionLogin(
            secret=settings.auth_secret.get_secret_value(),
            remember_days=settings.remember_session_days,
        ),
        features=features,
        register_url=settings.route_url(settings.register_path),
        invalid_state_handler=RejectInvalidState(),
    )


CallbackResolver = Annotated[OAuthCallbackResolver, Depends(get_callback_resolver)]
