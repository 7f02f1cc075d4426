"""API error classes.

Services return result values; only the HTTP layer raises these.
"""

from guest_access.core.outcomes import GuestAuthFailure


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
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


class GuestAuthError(APIError):
    """HTTP form of a guest verification failure.

    Carries attempts_remaining (INVALID_CODE) in details and a Retry-After
    header for cooldown and rate-limit failures.

    Args:
        result: The failure returned by a guest verification service.
    """

    def __init__(self, result: GuestAuthFailure) -> None:
        details = None
        if result.attempts_remaining is not None:
            details = [{"attempts_remaining": result.attempts_remaining}]

        headers = None
        if result.retry_after_seconds is not None:
            headers = {"Retry-After": str(result.retry_after_seconds)}

        super().__init__(
            code=result.code.value,
            message=result.message,
            status_code=result.status_code,
            details=details,
            headers=headers,
        )
        self.result = result
