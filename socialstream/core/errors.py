"""API error classes.

Errors raised by endpoints outside the OAuth callback. The callback itself
never raises these; it turns every failure into a redirect with a flash
message (see socialstream.core.callback_policy).
"""


class APIError(Exception):
    """Base class for API errors.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Request could not be accepted (400).

    Unknown or unconfigured provider, malformed parameters.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Also used when the resource exists but belongs to another user, so
    ownership is never revealed.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Conflicting state (409).

    Accepts a custom code for the specific conflict.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
