"""Response envelope models.

Consistent response format for all API endpoints.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    All success responses use {"data": ...} envelope.

    Usage:
        @router.post("/password-reset")
        async def request_password_reset(...) -> DataResponse[dict]:
            return DataResponse(data={"message": "..."})
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
    """Standard error response envelope.

    All errors use {"error": {...}} envelope.
    """

    error: ErrorDetail
