"""Shared fixtures for unit tests that need users and connected accounts.

Names chosen to avoid shadowing the in-memory ``store`` fixtures used by
the callback policy tests.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from socialstream.models.connected_account import ConnectedAccount
from socialstream.models.user import User
from tests.conftest import TEST_USER_ID


@pytest.fixture
async def user_a(db_session: AsyncSession) -> User:
    """Create User A (fixed ID, matches create_test_jwt's default subject)."""
    user = User(id=TEST_USER_ID, email="usera@test.com", name="User A")
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second user for ownership tests."""
    user = User(email="other@test.com", name="Other User")
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def github_account_a(db_session: AsyncSession, user_a: User) -> ConnectedAccount:
    """GitHub account connected to User A."""
    account = ConnectedAccount(
        user_id=user_a.id,
        provider="github",
        provider_id="gh-a",
        nickname="usera",
        email="usera@test.com",
        token="gho_a",
        refresh_token="refresh-a",
    )
    db_session.add(account)
    await db_session.flush()
    await db_session.refresh(account)
    return account
