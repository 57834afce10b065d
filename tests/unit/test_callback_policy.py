"""Tests for the OAuth callback policy.

Every branch of the decision table: provider errors, invalid state,
linking for a signed-in user, registration, login through an existing
link and account creation on first login. Collaborators are in-memory
so each test can assert exactly which writes happened.
"""

import pytest

from socialstream.core import messages
from socialstream.core.callback_policy import (
    CallbackError,
    CallbackOutcome,
    FlashStyle,
    InvalidStateHandler,
    OutcomeKind,
    Route,
    SessionState,
)
from socialstream.core.features import Features
from socialstream.core.identity import InvalidState, ProviderError
from tests.fakes import (
    REGISTER_URL,
    InMemoryAccounts,
    RecordingSessionLogin,
    make_identity,
    make_resolver,
)

# ===================================================================
# Fixtures
# ===================================================================


@pytest.fixture
def store() -> InMemoryAccounts:
    return InMemoryAccounts()


@pytest.fixture
def session_login() -> RecordingSessionLogin:
    return RecordingSessionLogin()


# ===================================================================
# Provider errors
# ===================================================================


class TestProviderError:
    """A provider-side failure never touches account data."""

    async def test_signed_out_redirects_to_register_with_errors(
        self, store, session_login
    ):
        """Guests see the provider's description in the registration errors."""
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github",
            ProviderError("The user has denied your application access.", "access_denied"),
            SessionState(),
        )

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.route is Route.REGISTER
        assert outcome.style is FlashStyle.ERRORS
        assert outcome.error is CallbackError.PROVIDER_ERROR
        assert outcome.message == "The user has denied your application access."
        assert store.writes == []
        assert session_login.logins == []

    async def test_signed_in_redirects_home_with_danger_banner(
        self, store, session_login
    ):
        """Signed-in users get a danger banner on the home page."""
        user = store.add_user("jane@example.com")
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", ProviderError("Something went wrong"), SessionState(user=user)
        )

        assert outcome.route is Route.HOME
        assert outcome.style is FlashStyle.DANGER_BANNER
        assert outcome.message == "Something went wrong"
        assert store.writes == []

    async def test_provider_error_ignores_registration_marker(self, store):
        """Arriving from the registration page does not change error routing."""
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github",
            ProviderError("denied"),
            SessionState(previous_url=REGISTER_URL),
        )

        assert outcome.route is Route.REGISTER
        assert outcome.error is CallbackError.PROVIDER_ERROR


# ===================================================================
# Invalid state
# ===================================================================


class TestInvalidState:
    """A failed state check is routed to the invalid-state handler."""

    async def test_default_handler_sends_guest_to_login(self, store, session_login):
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", InvalidState("Missing OAuth state"), SessionState()
        )

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.route is Route.LOGIN
        assert outcome.style is FlashStyle.ERRORS
        assert outcome.error is CallbackError.INVALID_STATE
        assert outcome.message == (
            "Your Github sign in session has expired or is invalid. Please try again."
        )
        assert store.writes == []
        assert session_login.logins == []

    async def test_default_handler_sends_signed_in_user_to_profile(self, store):
        user = store.add_user("jane@example.com")
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "google", InvalidState("expired"), SessionState(user=user)
        )

        assert outcome.route is Route.PROFILE
        assert outcome.style is FlashStyle.DANGER_BANNER
        assert outcome.error is CallbackError.INVALID_STATE

    async def test_custom_handler_receives_provider_and_reason(self, store):
        """A configured handler decides the outcome."""

        class RecordingHandler(InvalidStateHandler):
            def __init__(self) -> None:
                self.calls: list[tuple[str, str]] = []

            async def handle(self, provider, invalid_state, session):
                self.calls.append((provider, invalid_state.reason))
                return CallbackOutcome(kind=OutcomeKind.REJECTED, route=Route.HOME)

        handler = RecordingHandler()
        resolver = make_resolver(store, invalid_state_handler=handler)

        outcome = await resolver.resolve_callback(
            "github", InvalidState("state mismatch"), SessionState()
        )

        assert handler.calls == [("github", "state mismatch")]
        assert outcome.route is Route.HOME
        assert store.writes == []


# ===================================================================
# Signed-in user: connect the provider account
# ===================================================================


class TestAuthenticatedLink:
    """A signed-in session always links to the current user."""

    async def test_links_unlinked_identity_to_current_user(
        self, store, session_login
    ):
        user = store.add_user("jane@example.com")
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(user=user)
        )

        assert outcome.kind is OutcomeKind.LINKED
        assert outcome.route is Route.PROFILE
        assert outcome.style is FlashStyle.BANNER
        assert outcome.error is None
        assert outcome.message == (
            "You have successfully connected Github to your account."
        )
        assert outcome.user is user
        assert len(store.accounts_for(user)) == 1
        assert len(store.users) == 1
        assert session_login.logins == []

    async def test_identity_linked_to_other_user_is_rejected(
        self, store, session_login
    ):
        owner = store.add_user("owner@example.com")
        store.add_account(owner, "github", "gh-1001")
        intruder = store.add_user("intruder@example.com")
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(user=intruder)
        )

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.route is Route.PROFILE
        assert outcome.style is FlashStyle.DANGER_BANNER
        assert outcome.error is CallbackError.ALREADY_LINKED_CONFLICT
        assert outcome.message_key == messages.PROVIDER_ALREADY_LINKED_TO_OTHER
        assert store.writes == []
        assert store.accounts_for(intruder) == []
        assert session_login.logins == []

    async def test_identity_already_linked_to_same_user(self, store):
        user = store.add_user("jane@example.com")
        store.add_account(user, "github", "gh-1001")
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(user=user)
        )

        assert outcome.kind is OutcomeKind.ALREADY_LINKED
        assert outcome.error is CallbackError.ALREADY_LINKED
        assert outcome.style is FlashStyle.DANGER_BANNER
        assert outcome.message == (
            "This Github sign in account is already associated with your user."
        )
        assert store.writes == []

    async def test_linking_twice_never_duplicates(self, store):
        """Second identical callback reports already linked, no new record."""
        user = store.add_user("jane@example.com")
        resolver = make_resolver(store)
        session = SessionState(user=user)

        first = await resolver.resolve_callback("github", make_identity(), session)
        second = await resolver.resolve_callback("github", make_identity(), session)

        assert first.kind is OutcomeKind.LINKED
        assert second.kind is OutcomeKind.ALREADY_LINKED
        assert len(store.accounts_for(user)) == 1

    async def test_signed_in_session_ignores_registration_marker(
        self, store, session_login
    ):
        """Signed-in plus registration marker still links, never registers."""
        user = store.add_user("jane@example.com")
        resolver = make_resolver(
            store,
            session_login,
            features=Features(login_on_registration=True),
        )

        outcome = await resolver.resolve_callback(
            "github",
            make_identity(email="someone-else@example.com"),
            SessionState(user=user, previous_url=REGISTER_URL),
        )

        assert outcome.kind is OutcomeKind.LINKED
        assert len(store.users) == 1
        assert ("create_user", "github", "gh-1001") not in store.writes
        assert session_login.logins == []

    async def test_links_identity_with_different_email(self, store):
        """The provider email does not have to match the signed-in user's."""
        user = store.add_user("jane@example.com")
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "google",
            make_identity("google", "g-77", email="jane.work@example.org"),
            SessionState(user=user),
        )

        assert outcome.kind is OutcomeKind.LINKED
        assert store.accounts_for(user)[0].provider == "google"


# ===================================================================
# Registration
# ===================================================================


class TestRegistration:
    """Guests arriving from the registration page."""

    async def test_registers_new_user_and_logs_in(self, store, session_login):
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.route is Route.HOME
        assert outcome.login is not None
        assert store.writes == [("create_user", "github", "gh-1001")]
        assert [u for u, _ in session_login.logins] == [outcome.user]
        assert outcome.user.email == "jane@example.com"

    @pytest.mark.parametrize(
        "previous_url",
        [
            "http://localhost:3000/register/",
            "http://localhost:3000/register?ref=home",
            "http://LOCALHOST:3000/register#top",
        ],
    )
    async def test_registration_url_variants_count_as_registration(
        self, store, previous_url
    ):
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=previous_url)
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert store.writes == [("create_user", "github", "gh-1001")]

    async def test_other_page_is_not_registration(self, store):
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github",
            make_identity(),
            SessionState(previous_url="http://localhost:3000/register-help"),
        )

        assert outcome.error is CallbackError.NOT_FOUND

    async def test_registration_disabled_falls_through_to_login(self, store):
        resolver = make_resolver(store, features=Features(registration=False))

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.route is Route.LOGIN
        assert outcome.error is CallbackError.NOT_FOUND
        assert store.writes == []

    async def test_existing_email_rejected_without_login_on_registration(
        self, store, session_login
    ):
        store.add_user("jane@example.com")
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.route is Route.REGISTER
        assert outcome.style is FlashStyle.ERRORS
        assert outcome.error is CallbackError.ALREADY_REGISTERED
        assert outcome.message == (
            "An account with that Github sign in already exists, please login."
        )
        assert store.writes == []
        assert session_login.logins == []

    async def test_existing_email_links_and_logs_in(self, store, session_login):
        existing = store.add_user("jane@example.com")
        resolver = make_resolver(
            store, session_login, features=Features(login_on_registration=True)
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.user is existing
        assert store.writes == [("create_connected_account", "github", "gh-1001")]
        assert len(store.users) == 1
        assert session_login.logins == [(existing, False)]

    async def test_existing_email_with_existing_link_logs_in(self, store):
        existing = store.add_user("jane@example.com")
        store.add_account(existing, "github", "gh-1001")
        resolver = make_resolver(store, features=Features(login_on_registration=True))

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.user is existing
        assert store.writes == []

    async def test_existing_email_with_link_owned_by_other_user(
        self, store, session_login
    ):
        """Never log in as the email owner through another user's link."""
        store.add_user("jane@example.com")
        other = store.add_user("other@example.com")
        store.add_account(other, "github", "gh-1001")
        resolver = make_resolver(
            store, session_login, features=Features(login_on_registration=True)
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState(previous_url=REGISTER_URL)
        )

        assert outcome.error is CallbackError.ALREADY_LINKED_CONFLICT
        assert outcome.route is Route.REGISTER
        assert store.writes == []
        assert session_login.logins == []

    async def test_missing_email_rejected(self, store):
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github",
            make_identity(email=None),
            SessionState(previous_url=REGISTER_URL),
        )

        assert outcome.route is Route.REGISTER
        assert outcome.error is CallbackError.MISSING_EMAIL
        assert store.writes == []

    async def test_missing_email_generated_when_enabled(self, store):
        resolver = make_resolver(store, features=Features(generate_missing_emails=True))

        outcome = await resolver.resolve_callback(
            "github",
            make_identity(email=None),
            SessionState(previous_url=REGISTER_URL),
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.user.email == "gh-1001@github.invalid"


# ===================================================================
# Login
# ===================================================================


class TestLogin:
    """Guests arriving from anywhere but the registration page."""

    async def test_unknown_identity_rejected_when_auto_create_disabled(
        self, store, session_login
    ):
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.route is Route.LOGIN
        assert outcome.style is FlashStyle.ERRORS
        assert outcome.error is CallbackError.NOT_FOUND
        assert outcome.message == (
            "An account with this Github sign in was not found. "
            "Please register or try a different sign in method."
        )
        assert store.users == []
        assert store.writes == []
        assert session_login.logins == []

    async def test_first_login_creates_user_when_enabled(self, store, session_login):
        """github, no session, auto-create on, unused email: new user, logged in."""
        resolver = make_resolver(
            store,
            session_login,
            features=Features(create_account_on_first_login=True),
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.route is Route.HOME
        assert len(store.users) == 1
        assert store.writes == [("create_user", "github", "gh-1001")]
        assert session_login.logins == [(outcome.user, False)]

    async def test_first_login_rejects_taken_email(self, store, session_login):
        store.add_user("jane@example.com")
        resolver = make_resolver(
            store,
            session_login,
            features=Features(create_account_on_first_login=True),
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.route is Route.LOGIN
        assert outcome.error is CallbackError.DUPLICATE_EMAIL
        assert outcome.message == (
            "An account with that email address already exists. "
            "Please login to connect your Github account."
        )
        assert store.writes == []
        assert session_login.logins == []

    async def test_first_login_rejects_missing_email(self, store):
        resolver = make_resolver(
            store, features=Features(create_account_on_first_login=True)
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(email=None), SessionState()
        )

        assert outcome.route is Route.LOGIN
        assert outcome.error is CallbackError.MISSING_EMAIL
        assert store.writes == []

    async def test_first_login_generates_missing_email_when_enabled(self, store):
        resolver = make_resolver(
            store,
            features=Features(
                create_account_on_first_login=True, generate_missing_emails=True
            ),
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(email=None), SessionState()
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.user.email == "gh-1001@github.invalid"

    async def test_existing_link_updates_and_logs_in_owner(
        self, store, session_login
    ):
        """github, no session, link present: owner updated and logged in."""
        owner = store.add_user("jane@example.com")
        account = store.add_account(owner, "github", "gh-1001", token="old-token")
        resolver = make_resolver(store, session_login)

        outcome = await resolver.resolve_callback(
            "github", make_identity(token="new-token"), SessionState()
        )

        assert outcome.kind is OutcomeKind.LOGGED_IN
        assert outcome.user is owner
        assert store.writes == [
            ("update", "github", "gh-1001"),
            ("set_current_connected_account", str(account.id)),
        ]
        assert account.token == "new-token"
        assert owner.current_connected_account_id == account.id
        assert len(store.users) == 1
        assert session_login.logins == [(owner, False)]

    async def test_existing_link_wins_over_email_match(self, store):
        """Login goes through the link even if the email belongs to someone else."""
        owner = store.add_user("owner@example.com")
        store.add_user("jane@example.com")
        store.add_account(owner, "github", "gh-1001")
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.user is owner

    async def test_remember_session_flag_passed_to_login(self, store, session_login):
        owner = store.add_user("jane@example.com")
        store.add_account(owner, "github", "gh-1001")
        resolver = make_resolver(
            store, session_login, features=Features(remember_session=True)
        )

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.login.remember is True
        assert session_login.logins == [(owner, True)]

    async def test_same_provider_id_on_other_provider_is_distinct(self, store):
        """Links are keyed by (provider, provider_id), not provider_id alone."""
        owner = store.add_user("jane@example.com")
        store.add_account(owner, "google", "gh-1001")
        resolver = make_resolver(store)

        outcome = await resolver.resolve_callback(
            "github", make_identity(), SessionState()
        )

        assert outcome.error is CallbackError.NOT_FOUND
