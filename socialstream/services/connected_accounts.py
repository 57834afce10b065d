"""Database-backed collaborators for the OAuth callback policy.

Each class wraps the repositories for one collaborator role. None of them
commit: the request's session dependency owns the transaction.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from socialstream.core.callback_policy import AccountLinker, AccountUpdater, UserLookup
from socialstream.core.features import Features
from socialstream.core.identity import ProviderIdentity
from socialstream.models.connected_account import ConnectedAccount
from socialstream.models.user import User
from socialstream.repositories.connected_account_repository import (
    ConnectedAccountRepository,
)
from socialstream.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


def placeholder_email(provider: str, identity: ProviderIdentity) -> str:
    """Email used for users whose provider reported none.

    The ``.invalid`` TLD is reserved (RFC 2606) and never deliverable.
    """
    return f"{identity.id}@{provider}.invalid".lower()


class DatabaseUserLookup(UserLookup):
    """UserLookup over the users table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_email(self, email: str | None) -> User | None:
        if not email:
            return None
        return await UserRepository.get_by_email(self.db, email)


class DatabaseAccountLinker(AccountLinker):
    """AccountLinker over the users and connected_accounts tables."""

    def __init__(self, db: AsyncSession, features: Features) -> None:
        self.db = db
        self.features = features

    async def find_connected_account(
        self, provider: str, provider_id: str
    ) -> ConnectedAccount | None:
        return await ConnectedAccountRepository.get_by_provider_and_provider_id(
            self.db, provider, provider_id
        )

    async def create_connected_account(
        self, user: User, provider: str, identity: ProviderIdentity
    ) -> ConnectedAccount:
        return await ConnectedAccountRepository.create(
            self.db,
            user_id=user.id,
            provider=provider,
            provider_id=identity.id,
            name=identity.name,
            nickname=identity.nickname,
            email=identity.email,
            avatar_path=identity.avatar,
            token=identity.token,
            secret=identity.secret,
            refresh_token=identity.refresh_token,
            expires_at=identity.expires_at,
        )

    async def create_user(self, provider: str, identity: ProviderIdentity) -> User:
        """Create a user and its first connected account.

        The provider-reported email counts as verified; a generated
        placeholder does not.
        """
        if identity.email:
            email = identity.email
            email_verified = datetime.now(UTC)
        elif self.features.generate_missing_emails:
            email = placeholder_email(provider, identity)
            email_verified = None
        else:
            msg = f"{provider} identity {identity.id} has no email"
            raise ValueError(msg)

        user = await UserRepository.create(
            self.db,
            email=email,
            name=identity.name or identity.nickname,
            email_verified=email_verified,
            image=identity.avatar if self.features.provider_avatars else None,
        )
        account = await self.create_connected_account(user, provider, identity)
        await UserRepository.set_current_connected_account(self.db, user, account.id)

        logger.info(
            "Created user from provider",
            extra={"user_id": str(user.id), "provider": provider},
        )
        return user


class DatabaseAccountUpdater(AccountUpdater):
    """AccountUpdater over the users and connected_accounts tables."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def update(
        self,
        user: User,
        account: ConnectedAccount,
        provider: str,
        identity: ProviderIdentity,
    ) -> None:
        await ConnectedAccountRepository.update_snapshot(
            self.db,
            account,
            name=identity.name,
            nickname=identity.nickname,
            email=identity.email,
            avatar_path=identity.avatar,
            token=identity.token,
            secret=identity.secret,
            # Providers only send a refresh token on first consent
            refresh_token=identity.refresh_token or account.refresh_token,
            expires_at=identity.expires_at,
        )

    async def set_current_connected_account(
        self, user: User, account: ConnectedAccount
    ) -> None:
        await UserRepository.set_current_connected_account(self.db, user, account.id)
