"""Session endpoints.

Endpoints:
- POST /session/revoke: log out by denylisting the presented token
"""

from fastapi import APIRouter
from pydantic import BaseModel

from guest_access.api.deps import BearerToken, SessionTokens
from guest_access.core.errors import GuestAuthError
from guest_access.core.outcomes import GuestAuthFailure
from guest_access.core.responses import DataResponse

router = APIRouter()


class RevokeResponse(BaseModel):
    revoked: bool


@router.post("/revoke")
async def revoke_session(
    token: BearerToken,
    session_tokens: SessionTokens,
) -> DataResponse[RevokeResponse]:
    """Revoke the bearer token. Works for a token of any purpose."""
    result = await session_tokens.revoke(token)
    if isinstance(result, GuestAuthFailure):
        raise GuestAuthError(result)
    return DataResponse(data=RevokeResponse(revoked=True))
