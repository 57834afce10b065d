"""Repository for User CRUD operations.

Provides database access for the users table.
"""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from socialstream.models.user import User


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static, no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str | None = None,
        email_verified: datetime | None = None,
        image: str | None = None,
    ) -> User:
        """Create a new user.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            email: User email address.
            name: Display name.
            email_verified: Timestamp when email was verified.
            image: Profile picture URL.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=email.strip().lower(),
            name=name,
            email_verified=email_verified,
            image=image,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_current_connected_account(
        db: AsyncSession,
        user: User,
        connected_account_id: uuid.UUID | None,
    ) -> User:
        """Point the user at the connected account used to sign in.

        Args:
            db: Async database session.
            user: User to update.
            connected_account_id: Connected account ID, or None to clear it.

        Returns:
            The updated User.
        """
        user.current_connected_account_id = connected_account_id
        await db.flush()
        return user
