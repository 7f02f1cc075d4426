"""Response envelope models.

Consistent response format for all API endpoints.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources and lists.

    All success responses use the {"data": ...} envelope.

    Usage:
        @router.post("/otp/send", status_code=202)
        async def send_otp(...) -> DataResponse[OtpSendResponse]:
            ...
            return DataResponse(data=OtpSendResponse(expires_at=issued.expires_at))
    """

    data: T


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "INVALID_CODE").
        message: Human-readable error message.
        details: Optional list of extra details (field errors, attempts left).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    All errors use the {"error": {...}} envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail
