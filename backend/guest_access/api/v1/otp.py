"""OTP endpoints.

Endpoints:
- POST /otp/send: issue a code for a purpose and email (and order)
- POST /otp/verify: exchange a code for a purpose-scoped session token

Both run behind the abuse guard: per-IP and per-identifier windows are
checked before the challenge store is touched.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from guest_access.api.deps import ClientIp, Guard, Issuer, Verifier
from guest_access.core.errors import GuestAuthError
from guest_access.core.outcomes import FailureCode, GuestAuthFailure
from guest_access.core.responses import DataResponse
from guest_access.core.scope import Purpose

logger = logging.getLogger(__name__)

router = APIRouter()

# Verification failures that count toward the brute-force windows
_COUNTED_FAILURES = frozenset(
    {
        FailureCode.INVALID_CODE,
        FailureCode.ATTEMPTS_EXHAUSTED,
        FailureCode.INVALID_OR_EXPIRED,
    }
)


# ===================================================================
# Request / response models
# ===================================================================


class _OtpRequestBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    identifier: str = Field(min_length=3, max_length=254)
    purpose: Purpose
    resource_id: str | None = Field(default=None, max_length=64)

    @field_validator("purpose")
    @classmethod
    def _otp_purpose_only(cls, value: Purpose) -> Purpose:
        if not value.is_otp_purpose:
            msg = f"{value.value} cannot be verified by code"
            raise ValueError(msg)
        return value


class OtpSendRequest(_OtpRequestBase):
    """Request body for POST /otp/send."""


class OtpVerifyRequest(_OtpRequestBase):
    """Request body for POST /otp/verify."""

    code: str = Field(min_length=1, max_length=16)


class OtpSendResponse(BaseModel):
    expires_at: datetime


class OtpVerifyResponse(BaseModel):
    session_token: str
    purpose: Purpose
    resource_id: str | None
    expires_at: datetime


# ===================================================================
# POST /otp/send
# ===================================================================


@router.post("/send", status_code=status.HTTP_202_ACCEPTED)
async def send_otp(
    body: OtpSendRequest,
    client_ip: ClientIp,
    guard: Guard,
    issuer: Issuer,
) -> DataResponse[OtpSendResponse]:
    """Issue a one-time code and hand it to the delivery collaborator.

    The response never contains the code. A missing email/order match is
    reported with one generic NOT_FOUND message.
    """
    rejected = await guard.check_issue(client_ip, body.identifier)
    if rejected is not None:
        raise GuestAuthError(rejected)

    result = await issuer.issue(body.purpose, body.identifier, body.resource_id)
    if isinstance(result, GuestAuthFailure):
        raise GuestAuthError(result)

    return DataResponse(data=OtpSendResponse(expires_at=result.expires_at))


# ===================================================================
# POST /otp/verify
# ===================================================================


@router.post("/verify")
async def verify_otp(
    body: OtpVerifyRequest,
    client_ip: ClientIp,
    guard: Guard,
    verifier: Verifier,
) -> DataResponse[OtpVerifyResponse]:
    """Verify a code and return a session token scoped to its purpose.

    INVALID_CODE responses carry ``attempts_remaining`` in error details.
    """
    rejected = await guard.check_verify(client_ip, body.identifier)
    if rejected is not None:
        raise GuestAuthError(rejected)

    result = await verifier.verify(
        body.purpose, body.identifier, body.code, body.resource_id
    )
    if isinstance(result, GuestAuthFailure):
        if result.code in _COUNTED_FAILURES:
            await guard.record_failed_verification(client_ip, body.identifier)
        if result.code == FailureCode.ATTEMPTS_EXHAUSTED:
            await guard.report_exhausted_challenge(client_ip, body.identifier)
        raise GuestAuthError(result)

    return DataResponse(
        data=OtpVerifyResponse(
            session_token=result.token,
            purpose=result.claims.purpose,
            resource_id=result.claims.resource_id,
            expires_at=result.expires_at,
        )
    )
