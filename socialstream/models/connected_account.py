"""ConnectedAccount model - links between users and provider identities.

One row per (provider, provider_id). A user may hold several rows, one per
provider account they connected.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from socialstream.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from socialstream.models.user import User

_DEFAULT_UUID = text("gen_random_uuid()")


class ConnectedAccount(Base, TimestampMixin):
    """Provider account connected to a local user.

    The unique constraint on (provider, provider_id) is what keeps two
    concurrent callbacks from linking the same identity twice; nothing
    upstream holds a lock between lookup and insert.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        provider: Provider name ("github", "google", "linkedin").
        provider_id: Provider's unique user ID.
        name: Display name reported by the provider.
        nickname: Handle/login reported by the provider.
        email: Email reported by the provider.
        avatar_path: Avatar URL reported by the provider.
        token: OAuth access token.
        secret: OAuth 1 token secret (unused by OAuth 2 providers).
        refresh_token: OAuth refresh token.
        expires_at: Access token expiry.
        created_at: Record creation timestamp (from TimestampMixin).
        updated_at: Last refresh of the snapshot (from TimestampMixin).
    """

    __tablename__ = "connected_accounts"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_id", name="uq_connected_accounts_provider_id"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_path: Mapped[str | None] = mapped_column(Text(), nullable=True)
    token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    secret: Mapped[str | None] = mapped_column(Text(), nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text(), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="connected_accounts",
        foreign_keys=[user_id],
    )
