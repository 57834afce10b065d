"""Response envelope models.

Success responses use {"data": ...}; errors use {"error": {...}}.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope.

    Usage:
        @router.get("/connected-accounts")
        async def list_connected_accounts(...) -> DataResponse[list[ConnectedAccountRead]]:
            accounts = await ConnectedAccountRepository.list_for_user(db, user.id)
            return DataResponse(data=[...])
    """

    data: T


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional list of field-level errors (for validation).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    error: ErrorDetail
