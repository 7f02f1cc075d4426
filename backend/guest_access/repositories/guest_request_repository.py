"""Repository for the guest request outbox."""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.models.guest_request import GuestRequest


class GuestRequestRepository:
    """Stateless repository for GuestRequest table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        identifier: str,
        purpose: str,
        resource_id: str | None,
        payload: dict[str, Any],
        created_at: datetime,
    ) -> GuestRequest:
        """Record an authorized guest action.

        Returns:
            Created GuestRequest.
        """
        request = GuestRequest(
            identifier=identifier,
            purpose=purpose,
            resource_id=resource_id,
            payload=payload,
            created_at=created_at,
        )
        db.add(request)
        await db.flush()
        return request

    @staticmethod
    async def list_for_identifier(
        db: AsyncSession,
        *,
        identifier: str,
        purpose: str,
    ) -> list[GuestRequest]:
        """Requests a guest filed under one purpose, newest first."""
        stmt = (
            select(GuestRequest)
            .where(
                GuestRequest.identifier == identifier,
                GuestRequest.purpose == purpose,
            )
            .order_by(GuestRequest.created_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
