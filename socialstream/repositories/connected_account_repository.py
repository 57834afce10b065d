"""Repository for ConnectedAccount CRUD operations.

Provides database access for the connected_accounts table.
Follows the repository pattern established by UserRepository.
"""

import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from socialstream.models.connected_account import ConnectedAccount

# Snapshot fields refreshed from the provider on every login.
# Security: never add 'id', 'user_id', 'provider' or 'provider_id'; those
# identify the link and must not be reassigned by a provider payload.
_SNAPSHOT_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "nickname",
        "email",
        "avatar_path",
        "token",
        "secret",
        "refresh_token",
        "expires_at",
    }
)


class ConnectedAccountRepository:
    """Stateless repository for ConnectedAccount table operations.

    All methods are static, no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        provider: str,
        provider_id: str,
        name: str | None = None,
        nickname: str | None = None,
        email: str | None = None,
        avatar_path: str | None = None,
        token: str | None = None,
        secret: str | None = None,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
    ) -> ConnectedAccount:
        """Create a new connected account linking a provider identity to a user.

        Args:
            db: Async database session.
            user_id: FK to users table.
            provider: Provider name ("github", "google", etc.).
            provider_id: Provider's unique user identifier.
            name: Display name from the provider.
            nickname: Handle from the provider.
            email: Email from the provider.
            avatar_path: Avatar URL from the provider.
            token: OAuth access token.
            secret: OAuth 1 token secret.
            refresh_token: OAuth refresh token.
            expires_at: Access token expiry.

        Returns:
            Created ConnectedAccount with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If provider+provider_id already exists.
        """
        account = ConnectedAccount(
            user_id=user_id,
            provider=provider,
            provider_id=provider_id,
            name=name,
            nickname=nickname,
            email=email,
            avatar_path=avatar_path,
            token=token,
            secret=secret,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def get_by_provider_and_provider_id(
        db: AsyncSession,
        provider: str,
        provider_id: str,
    ) -> ConnectedAccount | None:
        """Find a connected account by provider name and provider's user ID.

        The owning user is eager-loaded so callers can read
        ``account.user`` without a lazy load on the async session.

        Args:
            db: Async database session.
            provider: Provider name (e.g., "github").
            provider_id: Provider's unique user identifier.

        Returns:
            ConnectedAccount if found, None otherwise.
        """
        stmt = (
            select(ConnectedAccount)
            .options(selectinload(ConnectedAccount.user))
            .where(
                ConnectedAccount.provider == provider,
                ConnectedAccount.provider_id == provider_id,
            )
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_for_user(
        db: AsyncSession,
        account_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> ConnectedAccount | None:
        """Fetch a connected account only if it belongs to the user.

        Args:
            db: Async database session.
            account_id: Connected account UUID.
            user_id: Owner UUID.

        Returns:
            ConnectedAccount if found and owned by user_id, None otherwise.
        """
        stmt = select(ConnectedAccount).where(
            ConnectedAccount.id == account_id,
            ConnectedAccount.user_id == user_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[ConnectedAccount]:
        """List all connected accounts of a user, oldest first.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            List of ConnectedAccount records (may be empty).
        """
        stmt = (
            select(ConnectedAccount)
            .where(ConnectedAccount.user_id == user_id)
            .order_by(ConnectedAccount.created_at)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_user(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Count connected accounts of a user."""
        stmt = (
            select(func.count())
            .select_from(ConnectedAccount)
            .where(ConnectedAccount.user_id == user_id)
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    async def update_snapshot(
        db: AsyncSession,
        account: ConnectedAccount,
        **kwargs: str | datetime | None,
    ) -> ConnectedAccount:
        """Refresh the provider snapshot stored on a connected account.

        Only fields in _SNAPSHOT_FIELDS are allowed.

        Args:
            db: Async database session.
            account: Connected account to update.
            **kwargs: Field names and values to update.

        Returns:
            The updated ConnectedAccount.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _SNAPSHOT_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        for field, value in kwargs.items():
            setattr(account, field, value)

        await db.flush()
        return account

    @staticmethod
    async def delete(db: AsyncSession, account: ConnectedAccount) -> None:
        """Delete a connected account.

        Args:
            db: Async database session.
            account: Connected account to delete.
        """
        await db.delete(account)
        await db.flush()
