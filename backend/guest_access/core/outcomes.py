"""Result types returned by the guest verification services.

Expected user-facing outcomes (wrong code, expired token, cooldown, ...) are
returned as ``GuestAuthFailure`` values instead of being raised, so every
caller has to branch on them explicitly. Only the HTTP layer turns a failure
into an ``APIError`` (see ``core.errors.GuestAuthError``).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from guest_access.core.scope import Purpose


class FailureCode(str, Enum):
    """Closed set of guest verification failure codes.

    Values double as the machine-readable ``error.code`` in API responses.
    """

    NOT_FOUND = "NOT_FOUND"
    TOO_SOON = "TOO_SOON"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    INVALID_OR_EXPIRED = "INVALID_OR_EXPIRED"
    INVALID_CODE = "INVALID_CODE"
    ATTEMPTS_EXHAUSTED = "ATTEMPTS_EXHAUSTED"
    RATE_LIMITED = "RATE_LIMITED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    SCOPE_MISMATCH = "SCOPE_MISMATCH"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    ORDER_STATE_INVALID = "ORDER_STATE_INVALID"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# HTTP status for each failure code
FAILURE_STATUS: dict[FailureCode, int] = {
    FailureCode.NOT_FOUND: 404,
    FailureCode.TOO_SOON: 429,
    FailureCode.DELIVERY_FAILED: 503,
    FailureCode.INVALID_OR_EXPIRED: 401,
    FailureCode.INVALID_CODE: 401,
    FailureCode.ATTEMPTS_EXHAUSTED: 401,
    FailureCode.RATE_LIMITED: 429,
    FailureCode.TOKEN_EXPIRED: 401,
    FailureCode.TOKEN_INVALID: 401,
    FailureCode.SCOPE_MISMATCH: 403,
    FailureCode.ALREADY_USED: 410,
    FailureCode.EXPIRED: 410,
    FailureCode.ORDER_STATE_INVALID: 409,
    FailureCode.SERVICE_UNAVAILABLE: 503,
}

# Default user-facing messages. NOT_FOUND is deliberately generic: it must not
# reveal whether the email or the order failed to match.
_DEFAULT_MESSAGES: dict[FailureCode, str] = {
    FailureCode.NOT_FOUND: "No matching order was found for the details provided",
    FailureCode.TOO_SOON: "A code was sent recently. Please wait and try again",
    FailureCode.DELIVERY_FAILED: "Could not send the code. Please try again shortly",
    FailureCode.INVALID_OR_EXPIRED: "Invalid or expired code. Please request a new one",
    FailureCode.INVALID_CODE: "Invalid code. Please try again",
    FailureCode.ATTEMPTS_EXHAUSTED: "Too many incorrect attempts. Request a new code",
    FailureCode.RATE_LIMITED: "Too many requests. Please try again later",
    FailureCode.TOKEN_EXPIRED: "Session expired. Please verify your email again",
    FailureCode.TOKEN_INVALID: "Invalid session. Please verify your email again",
    FailureCode.SCOPE_MISMATCH: "This session is not valid for the requested action",
    FailureCode.ALREADY_USED: "This link has already been used",
    FailureCode.EXPIRED: "This link has expired",
    FailureCode.ORDER_STATE_INVALID: "This action is no longer available for the order",
    FailureCode.SERVICE_UNAVAILABLE: "Service unavailable. Please try again shortly",
}


@dataclass(frozen=True)
class GuestAuthFailure:
    """An expected, user-facing failure.

    Attributes:
        code: Failure code.
        message: Human-readable message safe to show to the caller.
        attempts_remaining: Remaining verification attempts (INVALID_CODE only).
        retry_after_seconds: Seconds until a retry may succeed (TOO_SOON,
            RATE_LIMITED).
    """

    code: FailureCode
    message: str
    attempts_remaining: int | None = None
    retry_after_seconds: int | None = None

    @property
    def status_code(self) -> int:
        """HTTP status for this failure."""
        return FAILURE_STATUS[self.code]


def failure(
    code: FailureCode,
    *,
    attempts_remaining: int | None = None,
    retry_after_seconds: int | None = None,
) -> GuestAuthFailure:
    """Build a failure with the default message for its code."""
    return GuestAuthFailure(
        code=code,
        message=_DEFAULT_MESSAGES[code],
        attempts_remaining=attempts_remaining,
        retry_after_seconds=retry_after_seconds,
    )


@dataclass(frozen=True)
class ChallengeIssued:
    """OTP issued and handed to the delivery collaborator.

    The code itself is never part of the result.
    """

    expires_at: datetime


@dataclass(frozen=True)
class SessionClaims:
    """Verified scope carried by a session token.

    Attributes:
        identifier: Normalized email the token was minted for.
        purpose: Purpose value the token authorizes.
        resource_id: Bound resource (order id) or None.
        token_id: Unique token id (``jti``), used for revocation.
        issued_at: Issue time.
        expires_at: Expiry time.
    """

    identifier: str
    purpose: Purpose
    resource_id: str | None
    token_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class SessionGranted:
    """Successful OTP verification: a signed session token and its claims."""

    token: str
    claims: SessionClaims

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at


@dataclass(frozen=True)
class ActionGrant:
    """Result of a successful action token check or consumption.

    Attributes:
        order_id: Order the token is bound to.
        purpose: Purpose the token authorizes.
        guest_email: Checkout email of the order, read during the check.
    """

    order_id: str
    purpose: Purpose
    guest_email: str


IssueOutcome = ChallengeIssued | GuestAuthFailure
VerifyOutcome = SessionGranted | GuestAuthFailure
SessionOutcome = SessionClaims | GuestAuthFailure
ActionOutcome = ActionGrant | GuestAuthFailure
