"""Action token model - single-use emailed deep links.

Only the SHA-256 hash of the token is stored; the plain value exists in the
email alone.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from guest_access.models.base import Base


class ActionToken(Base):
    """Long-lived, single-use token bound to one order and purpose.

    Attributes:
        id: Token id.
        token_hash: SHA-256 hex digest of the plain token.
        order_id: Order the token acts on.
        purpose: Purpose value (``review_invitation``).
        created_at: Issue time.
        expires_at: Expiry time.
        used_at: Set once, when the token is consumed.
        revoked_at: Set when the bound order stopped being eligible.
    """

    __tablename__ = "action_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
