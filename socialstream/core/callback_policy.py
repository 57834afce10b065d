"""OAuth callback policy: link, register, log in, or reject.

Decides what a completed provider callback means for the current session
and delegates every side effect to injected collaborators. Shared by the
callback endpoint and by any other entry point that completes a provider
handshake.

Decision order:
1. Provider error -> banner (signed in) or registration errors (signed out)
2. Invalid state -> InvalidStateHandler
3. Signed in -> link the identity to the current user
4. Arrived from the registration page -> register (or log in by email)
5. Otherwise -> log in through an existing link, or create on first login

A signed-in session always takes step 3, even when it also carries a
stale registration marker.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from socialstream.core import messages
from socialstream.core.features import Features
from socialstream.core.identity import (
    InvalidState,
    ProviderCallbackResult,
    ProviderError,
    ProviderIdentity,
)
from socialstream.models.connected_account import ConnectedAccount
from socialstream.models.user import User

logger = logging.getLogger(__name__)


class Route(Enum):
    """Frontend routes a callback can redirect to."""

    HOME = "home"
    LOGIN = "login"
    REGISTER = "register"
    PROFILE = "profile"


class FlashStyle(Enum):
    """How the message is attached to the redirect.

    BANNER and DANGER_BANNER are page-wide notifications; ERRORS puts the
    message in the "socialstream" error bag rendered by the auth forms.
    """

    BANNER = "success"
    DANGER_BANNER = "danger"
    ERRORS = "errors"


class OutcomeKind(Enum):
    """What the callback did."""

    LINKED = "linked"
    ALREADY_LINKED = "already_linked"
    LOGGED_IN = "logged_in"
    REJECTED = "rejected"


class CallbackError(Enum):
    """Why a callback did not log in or link."""

    PROVIDER_ERROR = "provider_error"
    INVALID_STATE = "invalid_state"
    ALREADY_LINKED_CONFLICT = "already_linked_conflict"
    ALREADY_LINKED = "already_linked"
    ALREADY_REGISTERED = "already_registered"
    DUPLICATE_EMAIL = "duplicate_email"
    MISSING_EMAIL = "missing_email"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class LoginResponse:
    """Session issued for a user.

    Attributes:
        user_id: ID of the user that was logged in.
        token: Signed session token to set as the session cookie.
        max_age: Cookie lifetime in seconds.
        remember: Whether a long-lived "remember me" session was issued.
    """

    user_id: str
    token: str
    max_age: int
    remember: bool = False


@dataclass(frozen=True)
class CallbackOutcome:
    """Tagged result of resolving a callback.

    Attributes:
        kind: What happened.
        route: Frontend route to redirect to.
        style: How the message is attached to the redirect.
        message_key: Untranslated message template.
        replacements: Placeholder values for the template.
        message: Rendered message.
        error: Error kind for rejections and non-fatal notices.
        user: User that was linked or logged in, if any.
        login: Session to establish, if the outcome logs a user in.
    """

    kind: OutcomeKind
    route: Route
    style: FlashStyle | None = None
    message_key: str | None = None
    replacements: dict[str, str] = field(default_factory=dict)
    message: str | None = None
    error: CallbackError | None = None
    user: User | None = None
    login: LoginResponse | None = None


@dataclass(frozen=True)
class SessionState:
    """Per-browser state the policy reads.

    Attributes:
        user: Currently authenticated user, or None.
        previous_url: Page the user was on when the provider redirect
            started, or None.
    """

    user: User | None = None
    previous_url: str | None = None


# ===================================================================
# Collaborators
# ===================================================================


class UserLookup(ABC):
    """Finds local users."""

    @abstractmethod
    async def find_by_email(self, email: str | None) -> User | None:
        """Find a user by email; None when email is None or unknown."""


class AccountLinker(ABC):
    """Finds and creates links between users and provider identities."""

    @abstractmethod
    async def find_connected_account(
        self, provider: str, provider_id: str
    ) -> ConnectedAccount | None:
        """Find the link for (provider, provider_id), owner loaded."""

    @abstractmethod
    async def create_connected_account(
        self, user: User, provider: str, identity: ProviderIdentity
    ) -> ConnectedAccount:
        """Link the identity to an existing user."""

    @abstractmethod
    async def create_user(self, provider: str, identity: ProviderIdentity) -> User:
        """Create a new user bound to the identity."""


class AccountUpdater(ABC):
    """Refreshes existing links."""

    @abstractmethod
    async def update(
        self,
        user: User,
        account: ConnectedAccount,
        provider: str,
        identity: ProviderIdentity,
    ) -> None:
        """Store the latest provider snapshot (tokens, profile) on the link."""

    @abstractmethod
    async def set_current_connected_account(
        self, user: User, account: ConnectedAccount
    ) -> None:
        """Remember which link the user signed in with."""


class SessionLogin(ABC):
    """Establishes an authenticated session."""

    @abstractmethod
    async def login(self, user: User, remember: bool) -> LoginResponse:
        """Log the user in and describe the session to set."""


class InvalidStateHandler(ABC):
    """Handles callbacks whose OAuth state check failed."""

    @abstractmethod
    async def handle(
        self, provider: str, invalid_state: InvalidState, session: SessionState
    ) -> CallbackOutcome:
        """Turn the failed state check into an outcome."""


class RejectInvalidState(InvalidStateHandler):
    """Default handler: ask the user to start the sign in again."""

    async def handle(
        self, provider: str, invalid_state: InvalidState, session: SessionState
    ) -> CallbackOutcome:
        logger.warning(
            "OAuth state validation failed",
            extra={"provider": provider, "reason": invalid_state.reason},
        )
        if session.user is not None:
            return _reject(
                Route.PROFILE,
                FlashStyle.DANGER_BANNER,
                messages.INVALID_STATE,
                provider,
                CallbackError.INVALID_STATE,
            )
        return _reject(
            Route.LOGIN,
            FlashStyle.ERRORS,
            messages.INVALID_STATE,
            provider,
            CallbackError.INVALID_STATE,
        )


# ===================================================================
# Outcome helpers
# ===================================================================


def _message_fields(key: str, provider: str) -> dict:
    replacements = {"provider": provider}
    return {
        "message_key": key,
        "replacements": replacements,
        "message": messages.translate(key, replacements),
    }


def _reject(
    route: Route,
    style: FlashStyle,
    key: str,
    provider: str,
    error: CallbackError,
) -> CallbackOutcome:
    return CallbackOutcome(
        kind=OutcomeKind.REJECTED,
        route=route,
        style=style,
        error=error,
        **_message_fields(key, provider),
    )


def _normalize_url(url: str) -> str:
    """Drop query, fragment and trailing slash so page URLs compare equal."""
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


# ===================================================================
# Resolver
# ===================================================================


class OAuthCallbackResolver:
    """Resolves a provider callback into a single outcome.

    Holds no state of its own between calls. Every read and write goes
    through the collaborators passed in at construction.

    Args:
        users: User lookup by email.
        linker: Connected account lookup and creation, user creation.
        updater: Connected account refresh.
        session_login: Session establishment.
        features: Feature flags for this request.
        register_url: Absolute URL of the registration page, compared
            against the session's previous URL.
        invalid_state_handler: Handler for failed state checks.
    """

    def __init__(
        self,
        *,
        users: UserLookup,
        linker: AccountLinker,
        updater: AccountUpdater,
        session_login: SessionLogin,
        features: Features,
        register_url: str,
        invalid_state_handler: InvalidStateHandler | None = None,
    ) -> None:
        self.users = users
        self.linker = linker
        self.updater = updater
        self.session_login = session_login
        self.features = features
        self.register_url = register_url
        self.invalid_state_handler = invalid_state_handler or RejectInvalidState()

    async def resolve_callback(
        self,
        provider: str,
        result: ProviderCallbackResult,
        session: SessionState,
    ) -> CallbackOutcome:
        """Decide what a provider callback does.

        Args:
            provider: Provider name from the callback route.
            result: Identity, provider error, or invalid state.
            session: Current session state.

        Returns:
            The outcome to render as a redirect.
        """
        if isinstance(result, ProviderError):
            return self.provider_error(provider, result, session)

        if isinstance(result, InvalidState):
            return await self.invalid_state_handler.handle(provider, result, session)

        identity = result
        account = await self.linker.find_connected_account(provider, identity.id)

        # Authenticated...
        if session.user is not None:
            return await self._already_authenticated(
                session.user, account, provider, identity
            )

        # Registration...
        if self.features.registration and self._arrived_from_registration(session):
            user = await self.users.find_by_email(identity.email)
            if user is not None:
                return await self._user_already_registered(
                    user, account, provider, identity
                )
            return await self._register(provider, identity)

        # Login...
        if account is None:
            if not self.features.create_account_on_first_login:
                logger.info(
                    "OAuth login without connected account",
                    extra={"provider": provider},
                )
                return _reject(
                    Route.LOGIN,
                    FlashStyle.ERRORS,
                    messages.ACCOUNT_NOT_FOUND,
                    provider,
                    CallbackError.NOT_FOUND,
                )
            return await self._create_on_first_login(provider, identity)

        user = account.user
        await self.updater.update(user, account, provider, identity)
        await self.updater.set_current_connected_account(user, account)
        logger.info(
            "Returning OAuth user",
            extra={"user_id": str(user.id), "provider": provider},
        )
        return await self._login(user)

    def provider_error(
        self, provider: str, error: ProviderError, session: SessionState
    ) -> CallbackOutcome:
        """Report a provider-side failure without touching account data."""
        logger.info(
            "OAuth provider returned an error",
            extra={"provider": provider, "code": error.code},
        )
        if session.user is not None:
            route, style = Route.HOME, FlashStyle.DANGER_BANNER
        else:
            route, style = Route.REGISTER, FlashStyle.ERRORS
        return CallbackOutcome(
            kind=OutcomeKind.REJECTED,
            route=route,
            style=style,
            message_key=error.description,
            message=error.description,
            error=CallbackError.PROVIDER_ERROR,
        )

    def _arrived_from_registration(self, session: SessionState) -> bool:
        if not session.previous_url:
            return False
        return _normalize_url(session.previous_url) == _normalize_url(
            self.register_url
        )

    async def _already_authenticated(
        self,
        user: User,
        account: ConnectedAccount | None,
        provider: str,
        identity: ProviderIdentity,
    ) -> CallbackOutcome:
        """Connect the identity to the signed-in user."""
        if account is not None and account.user_id != user.id:
            logger.warning(
                "OAuth account already linked to another user",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return _reject(
                Route.PROFILE,
                FlashStyle.DANGER_BANNER,
                messages.PROVIDER_ALREADY_LINKED_TO_OTHER,
                provider,
                CallbackError.ALREADY_LINKED_CONFLICT,
            )

        if account is None:
            await self.linker.create_connected_account(user, provider, identity)
            logger.info(
                "Connected OAuth account to signed-in user",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return CallbackOutcome(
                kind=OutcomeKind.LINKED,
                route=Route.PROFILE,
                style=FlashStyle.BANNER,
                user=user,
                **_message_fields(messages.PROVIDER_CONNECTED, provider),
            )

        return CallbackOutcome(
            kind=OutcomeKind.ALREADY_LINKED,
            route=Route.PROFILE,
            style=FlashStyle.DANGER_BANNER,
            error=CallbackError.ALREADY_LINKED,
            user=user,
            **_message_fields(messages.PROVIDER_ALREADY_LINKED, provider),
        )

    async def _user_already_registered(
        self,
        user: User,
        account: ConnectedAccount | None,
        provider: str,
        identity: ProviderIdentity,
    ) -> CallbackOutcome:
        """Registration attempt for an email that already has a user."""
        if not self.features.login_on_registration:
            return _reject(
                Route.REGISTER,
                FlashStyle.ERRORS,
                messages.PROVIDER_ALREADY_REGISTERED,
                provider,
                CallbackError.ALREADY_REGISTERED,
            )

        # Identity linked to somebody else: reject, do not log the email owner
        # in. Intentional; keep this a rejection.
        if account is not None and account.user_id != user.id:
            logger.warning(
                "OAuth registration matched an email owned by another link",
                extra={"user_id": str(user.id), "provider": provider},
            )
            return _reject(
                Route.REGISTER,
                FlashStyle.ERRORS,
                messages.PROVIDER_ALREADY_LINKED_TO_OTHER,
                provider,
                CallbackError.ALREADY_LINKED_CONFLICT,
            )

        # The user exists, but is not connected to this provider yet.
        if account is None:
            await self.linker.create_connected_account(user, provider, identity)
            logger.info(
                "Linked OAuth account to existing user on registration",
                extra={"user_id": str(user.id), "provider": provider},
            )

        return await self._login(user)

    async def _register(
        self, provider: str, identity: ProviderIdentity
    ) -> CallbackOutcome:
        """Create a new user from the registration page."""
        if not identity.email and not self.features.generate_missing_emails:
            return _reject(
                Route.REGISTER,
                FlashStyle.ERRORS,
                messages.PROVIDER_MISSING_EMAIL,
                provider,
                CallbackError.MISSING_EMAIL,
            )

        if await self.users.find_by_email(identity.email) is not None:
            return _reject(
                Route.REGISTER,
                FlashStyle.ERRORS,
                messages.EMAIL_ALREADY_EXISTS,
                provider,
                CallbackError.DUPLICATE_EMAIL,
            )

        user = await self.linker.create_user(provider, identity)
        logger.info(
            "Registered new OAuth user",
            extra={"user_id": str(user.id), "provider": provider},
        )
        return await self._login(user)

    async def _create_on_first_login(
        self, provider: str, identity: ProviderIdentity
    ) -> CallbackOutcome:
        """Create a new user for an unknown identity on a login attempt."""
        if await self.users.find_by_email(identity.email) is not None:
            return _reject(
                Route.LOGIN,
                FlashStyle.ERRORS,
                messages.EMAIL_ALREADY_EXISTS,
                provider,
                CallbackError.DUPLICATE_EMAIL,
            )

        if not identity.email and not self.features.generate_missing_emails:
            return _reject(
                Route.LOGIN,
                FlashStyle.ERRORS,
                messages.PROVIDER_MISSING_EMAIL,
                provider,
                CallbackError.MISSING_EMAIL,
            )

        user = await self.linker.create_user(provider, identity)
        logger.info(
            "Created OAuth user on first login",
            extra={"user_id": str(user.id), "provider": provider},
        )
        return await self._login(user)

    async def _login(self, user: User) -> CallbackOutcome:
        login = await self.session_login.login(user, self.features.remember_session)
        return CallbackOutcome(
            kind=OutcomeKind.LOGGED_IN,
            route=Route.HOME,
            user=user,
            login=login,
        )
