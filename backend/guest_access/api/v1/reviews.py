"""Review invitation endpoints (action tokens).

Endpoints:
- GET  /review?token=...: check an emailed review link without consuming it
- POST /reviews/submit: consume the link and record the review

Review links carry a single-use action token issued when the order was
delivered. No session token is involved.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from guest_access.api.deps import ActionTokens, DbSession, get_clock
from guest_access.api.v1.guest_actions import GuestRequestRead
from guest_access.core.clock import Clock
from guest_access.core.config import settings
from guest_access.core.errors import GuestAuthError
from guest_access.core.outcomes import GuestAuthFailure
from guest_access.core.rate_limiting import limiter
from guest_access.core.responses import DataResponse
from guest_access.core.scope import Purpose
from guest_access.repositories.guest_request_repository import (
    GuestRequestRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_TOKEN_MAX_LENGTH = 128


# ===================================================================
# Request / response models
# ===================================================================


class ReviewSubmit(BaseModel):
    """Request body for POST /reviews/submit."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=_TOKEN_MAX_LENGTH)
    rating: int = Field(ge=1, le=5)
    review_text: str | None = Field(default=None, max_length=5000)


class ReviewInvitation(BaseModel):
    order_id: str
    purpose: Purpose


# ===================================================================
# GET /review
# ===================================================================


@router.get("/review")
@limiter.limit(lambda: settings.rate_limit_review_check)
async def check_review_link(
    request: Request,  # noqa: ARG001
    action_tokens: ActionTokens,
    token: Annotated[str, Query(min_length=1, max_length=_TOKEN_MAX_LENGTH)],
) -> DataResponse[ReviewInvitation]:
    """Check a review link so the form can be rendered. Nothing is consumed."""
    result = await action_tokens.check(token)
    if isinstance(result, GuestAuthFailure):
        raise GuestAuthError(result)
    return DataResponse(
        data=ReviewInvitation(order_id=result.order_id, purpose=result.purpose)
    )


# ===================================================================
# POST /reviews/submit
# ===================================================================


@router.post("/reviews/submit", status_code=status.HTTP_201_CREATED)
@limiter.limit(lambda: settings.rate_limit_review_submit)
async def submit_review(
    request: Request,  # noqa: ARG001
    body: ReviewSubmit,
    action_tokens: ActionTokens,
    db: DbSession,
    clock: Annotated[Clock, Depends(get_clock)],
) -> DataResponse[GuestRequestRead]:
    """Consume the review link and record the review.

    The token is consumed in the same transaction as the review row, so a
    failed insert leaves the link usable. A second submission with the same
    link gets 410 ALREADY_USED.
    """
    result = await action_tokens.validate(body.token, commit=False)
    if isinstance(result, GuestAuthFailure):
        raise GuestAuthError(result)

    row = await GuestRequestRepository.create(
        db,
        identifier=result.guest_email,
        purpose=result.purpose.value,
        resource_id=result.order_id,
        payload={"rating": body.rating, "review_text": body.review_text},
        created_at=clock(),
    )
    logger.info("Recorded review for order %s", result.order_id)
    return DataResponse(data=GuestRequestRead.from_model(row))
