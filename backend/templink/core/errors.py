"""API error classes.

HTTP status codes and machine-readable error codes for the links API.
Every subclass is rendered by the APIError handler in main.py as an
ErrorResponse envelope.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

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
    """Field validation failed (400).

    Use for request body validation errors and invalid or expired links.
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


class NotFoundError(APIError):
    """Resource not found (404)."""

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
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
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


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when request is syntactically valid but violates business rules.
    E.g., requesting a password reset for an account never activated.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=message,
            status_code=422,
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
