"""SQLAlchemy ORM models for Socialstream.

All models are exported from this module for convenient imports:
    from socialstream.models import User, ConnectedAccount

Models:
- user.py: User
- connected_account.py: ConnectedAccount
"""

from socialstream.models.base import Base, TimestampMixin
from socialstream.models.connected_account import ConnectedAccount
from socialstream.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tables
    "User",
    "ConnectedAccount",
]
