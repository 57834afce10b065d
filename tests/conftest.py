import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from socialstream.core.config import settings
from socialstream.models.base import Base

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
) -> str:
    """Create a signed session JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": iat or now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on the configured port, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            f"PostgreSQL not available on port {settings.database_port}. "
            "Start a database and set DATABASE_* to run these tests."
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available.
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def oauth_settings() -> Iterator[None]:
    """Configure the auth secret and provider credentials for a test.

    Restores the original values afterwards so tests stay independent.

    Yields:
        None.
    """
    overrides = {
        "auth_secret": SecretStr(TEST_AUTH_SECRET),
        "auth_cookie_secure": False,
        "github_client_id": "test-github-client-id",
        "github_client_secret": SecretStr("test-github-client-secret"),
        "google_client_id": "test-google-client-id",
        "google_client_secret": SecretStr("test-google-client-secret"),
        "linkedin_client_id": "test-linkedin-client-id",
        "linkedin_client_secret": SecretStr("test-linkedin-client-secret"),
    }
    originals = {name: getattr(settings, name) for name in overrides}
    for name, value in overrides.items():
        setattr(settings, name, value)

    yield

    for name, value in originals.items():
        setattr(settings, name, value)


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.

    Yields:
        None (autouse fixture).
    """
    from socialstream.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
