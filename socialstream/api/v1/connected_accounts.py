"""Connected account management endpoints.

List the signed-in user's connected accounts and disconnect one of them.
"""

import logging
import uuid

from fastapi import APIRouter
from starlette.responses import Response

from socialstream.api.deps import CurrentUser, DbSession
from socialstream.core.errors import ConflictError, NotFoundError
from socialstream.core.responses import DataResponse
from socialstream.repositories.connected_account_repository import (
    ConnectedAccountRepository,
)
from socialstream.repositories.user_repository import UserRepository
from socialstream.schemas.connected_account import ConnectedAccountRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def list_connected_accounts(
    user: CurrentUser,
    db: DbSession,
) -> DataResponse[list[ConnectedAccountRead]]:
    """List the current user's connected accounts, oldest first."""
    accounts = await ConnectedAccountRepository.list_for_user(db, user.id)
    return DataResponse(
        data=[ConnectedAccountRead.from_model(account, user) for account in accounts]
    )


@router.delete("/{account_id}", status_code=204)
async def delete_connected_account(
    account_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
) -> Response:
    """Disconnect a provider account from the current user.

    Refuses to remove the last sign-in method of a user without a
    password, which would lock them out.

    Raises:
        NotFoundError: If the account does not exist or is not the user's.
        ConflictError: If it is the user's only way to sign in.
    """
    account = await ConnectedAccountRepository.get_for_user(db, account_id, user.id)
    if account is None:
        raise NotFoundError("Connected account", str(account_id))

    if user.password_hash is None:
        remaining = await ConnectedAccountRepository.count_for_user(db, user.id)
        if remaining <= 1:
            raise ConflictError(
                code="LAST_SIGN_IN_METHOD",
                message=(
                    "This is your only way to sign in. "
                    "Connect another account or set a password first."
                ),
            )

    if user.current_connected_account_id == account.id:
        await UserRepository.set_current_connected_account(db, user, None)

    await ConnectedAccountRepository.delete(db, account)
    logger.info(
        "Disconnected OAuth account",
        extra={"user_id": str(user.id), "provider": account.provider},
    )
    return Response(status_code=204)
