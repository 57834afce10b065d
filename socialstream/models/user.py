"""User model - local accounts that provider identities link to."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from socialstream.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from socialstream.models.connected_account import ConnectedAccount

_DEFAULT_UUID = text("gen_random_uuid()")


class User(Base, TimestampMixin):
    """Local user account.

    Attributes:
        id: UUID primary key.
        email: Unique email address (stored lowercase).
        name: Display name (populated from the provider on creation).
        email_verified: Timestamp when email was verified. NULL = unverified.
        image: Profile picture URL (copied from the provider when the
            provider-avatars feature is enabled).
        password_hash: Password hash. NULL for social-only users.
        current_connected_account_id: Connected account used for the most
            recent social login. SET NULL when that account is removed.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    image: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    # users <-> connected_accounts is a cycle; use_alter defers this FK
    current_connected_account_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey(
            "connected_accounts.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_users_current_connected_account",
        ),
        nullable=True,
    )

    # Relationships
    connected_accounts: Mapped[list["ConnectedAccount"]] = relationship(
        "ConnectedAccount",
        back_populates="user",
        foreign_keys="ConnectedAccount.user_id",
        cascade="all, delete-orphan",
    )
