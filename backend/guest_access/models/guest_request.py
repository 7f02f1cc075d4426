"""Guest request outbox model.

Each authorized guest action is recorded here for the storefront's business
collaborators (support desk, fulfillment, privacy team) to pick up.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from guest_access.models.base import Base

REQUEST_PENDING = "pending"


class GuestRequest(Base):
    """One authorized guest action awaiting processing.

    Attributes:
        id: Request id.
        identifier: Verified email of the guest.
        purpose: Purpose value that authorized the request.
        resource_id: Order id when the action targets one order.
        payload: Action-specific body (grievance text, corrections, review).
        status: Processing state; this service only writes ``pending``.
        created_at: When the request was recorded.
    """

    __tablename__ = "guest_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    identifier: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=REQUEST_PENDING,
        server_default=REQUEST_PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
