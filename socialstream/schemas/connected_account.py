"""Response schemas for connected accounts.

Tokens are never serialized: only profile fields leave the API.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from socialstream.models.connected_account import ConnectedAccount
from socialstream.models.user import User


class ConnectedAccountRead(BaseModel):
    """A connected account as shown on the profile page.

    Attributes:
        id: Connected account UUID.
        provider: Provider name.
        provider_id: Provider's user ID.
        name: Display name at the provider.
        nickname: Handle at the provider.
        email: Email at the provider.
        avatar_path: Avatar URL at the provider.
        created_at: When the account was connected.
        is_current: Whether the user last signed in with this account.
    """

    model_config = ConfigDict(extra="forbid")

    id: uuid.UUID
    provider: str
    provider_id: str
    name: str | None = None
    nickname: str | None = None
    email: str | None = None
    avatar_path: str | None = None
    created_at: datetime
    is_current: bool = False

    @classmethod
    def from_model(cls, account: ConnectedAccount, user: User) -> "ConnectedAccountRead":
        return cls(
            id=account.id,
            provider=account.provider,
            provider_id=account.provider_id,
            name=account.name,
            nickname=account.nickname,
            email=account.email,
            avatar_path=account.avatar_path,
            created_at=account.created_at,
            is_current=user.current_connected_account_id == account.id,
        )
