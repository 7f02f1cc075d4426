"""Scoped guest action endpoints.

Each endpoint accepts only a session token minted for its own purpose; a
token for any other purpose gets 403 SCOPE_MISMATCH. Order-scoped endpoints
also require the token's order id to match the order in the body.

Authorized actions are recorded in the guest request outbox for the
storefront's business collaborators.

Endpoints:
- GET  /grievances: list the guest's grievances (grievance_access)
- POST /grievances: file a grievance (grievance_access)
- POST /orders/cancel: request cancellation of one order (order_cancellation)
- POST /data/export: request a data export (data_export)
- POST /data/delete: request data deletion (data_deletion)
- POST /data/correct: request a correction to one order (data_correction)
"""

import logging
import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.api.deps import (
    BearerToken,
    DbSession,
    SessionTokens,
    authorize_session,
    get_clock,
    get_order_lookup,
    require_session,
)
from guest_access.core.clock import Clock
from guest_access.core.config import settings
from guest_access.core.errors import GuestAuthError
from guest_access.core.outcomes import FailureCode, SessionClaims, failure
from guest_access.core.rate_limiting import limiter
from guest_access.core.responses import DataResponse
from guest_access.core.scope import Purpose, mask_email
from guest_access.models.guest_request import GuestRequest
from guest_access.repositories.guest_request_repository import (
    GuestRequestRepository,
)
from guest_access.services.collaborators import OrderLookup

logger = logging.getLogger(__name__)

router = APIRouter()

GrievanceSession = Annotated[
    SessionClaims, Depends(require_session(Purpose.GRIEVANCE_ACCESS))
]
ExportSession = Annotated[SessionClaims, Depends(require_session(Purpose.DATA_EXPORT))]
DeletionSession = Annotated[
    SessionClaims, Depends(require_session(Purpose.DATA_DELETION))
]
CurrentClock = Annotated[Clock, Depends(get_clock)]
Orders = Annotated[OrderLookup, Depends(get_order_lookup)]


def _guest_actions_limit() -> str:
    return settings.rate_limit_guest_actions


# ===================================================================
# Request / response models
# ===================================================================


class GrievanceCreate(BaseModel):
    """Request body for POST /grievances."""

    model_config = ConfigDict(extra="forbid")

    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=5000)
    order_id: str | None = Field(default=None, max_length=64)


class OrderCancelRequest(BaseModel):
    """Request body for POST /orders/cancel."""

    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(min_length=1, max_length=64)
    reason: str | None = Field(default=None, max_length=1000)


class DataDeleteRequest(BaseModel):
    """Request body for POST /data/delete."""

    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=1000)


class DataCorrectRequest(BaseModel):
    """Request body for POST /data/correct."""

    model_config = ConfigDict(extra="forbid")

    order_id: str = Field(min_length=1, max_length=64)
    corrections: dict[str, str] = Field(min_length=1, max_length=20)


class GuestRequestRead(BaseModel):
    """A recorded guest request."""

    id: uuid.UUID
    purpose: str
    resource_id: str | None
    status: str
    payload: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, row: GuestRequest) -> "GuestRequestRead":
        return cls(
            id=row.id,
            purpose=row.purpose,
            resource_id=row.resource_id,
            status=row.status,
            payload=row.payload,
            created_at=row.created_at,
        )


async def _record(
    db: AsyncSession,
    claims: SessionClaims,
    payload: dict[str, Any],
    now: datetime,
    resource_id: str | None = None,
) -> GuestRequestRead:
    row = await GuestRequestRepository.create(
        db,
        identifier=claims.identifier,
        purpose=claims.purpose.value,
        resource_id=resource_id or claims.resource_id,
        payload=payload,
        created_at=now,
    )
    logger.info(
        "Recorded %s request for %s",
        claims.purpose.value,
        mask_email(claims.identifier),
    )
    return GuestRequestRead.from_model(row)


# ===================================================================
# Grievances
# ===================================================================


@router.get("/grievances")
@limiter.limit(_guest_actions_limit)
async def list_grievances(
    request: Request,  # noqa: ARG001
    claims: GrievanceSession,
    db: DbSession,
) -> DataResponse[list[GuestRequestRead]]:
    """List grievances filed with the verified email, newest first."""
    rows = await GuestRequestRepository.list_for_identifier(
        db, identifier=claims.identifier, purpose=Purpose.GRIEVANCE_ACCESS.value
    )
    return DataResponse(data=[GuestRequestRead.from_model(row) for row in rows])


@router.post("/grievances", status_code=status.HTTP_201_CREATED)
@limiter.limit(_guest_actions_limit)
async def file_grievance(
    request: Request,  # noqa: ARG001
    body: GrievanceCreate,
    claims: GrievanceSession,
    db: DbSession,
    clock: CurrentClock,
    orders: Orders,
) -> DataResponse[GuestRequestRead]:
    """File a grievance for the verified email.

    An order id, when given, must belong to that email; otherwise 404.
    """
    order_id = body.order_id.strip() if body.order_id else None
    if order_id:
        order = await orders.find_for_identifier(claims.identifier, order_id)
        if order is None:
            raise GuestAuthError(failure(FailureCode.NOT_FOUND))
    created = await _record(
        db,
        claims,
        {"subject": body.subject, "message": body.message},
        clock(),
        resource_id=order_id,
    )
    return DataResponse(data=created)


# ===================================================================
# Order-scoped actions
# ===================================================================


@router.post("/orders/cancel", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(_guest_actions_limit)
async def cancel_order(
    request: Request,  # noqa: ARG001
    body: OrderCancelRequest,
    token: BearerToken,
    session_tokens: SessionTokens,
    db: DbSession,
    clock: CurrentClock,
) -> DataResponse[GuestRequestRead]:
    """Request cancellation of the order the session is bound to."""
    claims = await authorize_session(
        session_tokens, token, Purpose.ORDER_CANCELLATION, body.order_id
    )
    created = await _record(db, claims, {"reason": body.reason}, clock())
    return DataResponse(data=created)


@router.post("/data/correct", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(_guest_actions_limit)
async def correct_order_data(
    request: Request,  # noqa: ARG001
    body: DataCorrectRequest,
    token: BearerToken,
    session_tokens: SessionTokens,
    db: DbSession,
    clock: CurrentClock,
) -> DataResponse[GuestRequestRead]:
    """Request corrections to the order the session is bound to."""
    claims = await authorize_session(
        session_tokens, token, Purpose.DATA_CORRECTION, body.order_id
    )
    created = await _record(db, claims, {"corrections": body.corrections}, clock())
    return DataResponse(data=created)


# ===================================================================
# Email-scoped data requests
# ===================================================================


@router.post("/data/export", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(_guest_actions_limit)
async def request_data_export(
    request: Request,  # noqa: ARG001
    claims: ExportSession,
    db: DbSession,
    clock: CurrentClock,
) -> DataResponse[GuestRequestRead]:
    """Request an export of all data held for the verified email."""
    created = await _record(db, claims, {}, clock())
    return DataResponse(data=created)


@router.post("/data/delete", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(_guest_actions_limit)
async def request_data_deletion(
    request: Request,  # noqa: ARG001
    claims: DeletionSession,
    db: DbSession,
    clock: CurrentClock,
    body: DataDeleteRequest | None = None,
) -> DataResponse[GuestRequestRead]:
    """Request deletion of all data held for the verified email."""
    reason = body.reason if body is not None else None
    created = await _record(db, claims, {"reason": reason}, clock())
    return DataResponse(data=created)
