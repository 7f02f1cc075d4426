"""OTP challenge model.

One row per issued code. The raw code is never stored, only an HMAC of it.
At most one ``active`` challenge may exist per (purpose, identifier,
resource_id); a partial unique index enforces it.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from guest_access.models.base import Base

CHALLENGE_ACTIVE = "active"
CHALLENGE_CONSUMED = "consumed"
CHALLENGE_EXPIRED = "expired"
CHALLENGE_EXHAUSTED = "exhausted"

CHALLENGE_STATUSES = (
    CHALLENGE_ACTIVE,
    CHALLENGE_CONSUMED,
    CHALLENGE_EXPIRED,
    CHALLENGE_EXHAUSTED,
)


class OtpChallenge(Base):
    """Pending proof-of-control for one (purpose, identifier, resource) key.

    Attributes:
        id: Challenge id.
        purpose: Purpose value the code authorizes.
        identifier: Normalized email the code was sent to.
        resource_id: Order id for order-scoped purposes, empty otherwise.
        code_salt: Random per-challenge salt.
        code_hash: HMAC-SHA256 of ``salt:code`` keyed with the server secret.
        created_at: Issue time (cooldown is measured from it).
        expires_at: Time after which the code is no longer accepted.
        consumed_at: Set when the code was verified successfully.
        attempts_remaining: Wrong guesses left before the challenge exhausts.
        status: One of active, consumed, expired, exhausted.
    """

    __tablename__ = "otp_challenges"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'consumed', 'expired', 'exhausted')",
            name="ck_otp_challenges_status",
        ),
        CheckConstraint(
            "attempts_remaining >= 0",
            name="ck_otp_challenges_attempts_non_negative",
        ),
        Index(
            "uq_otp_challenges_active_key",
            "purpose",
            "identifier",
            "resource_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "ix_otp_challenges_key_created",
            "purpose",
            "identifier",
            "resource_id",
            "created_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    purpose: Mapped[str] = mapped_column(String(32), nullable=False)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="",
        server_default="",
    )
    code_salt: Mapped[str] = mapped_column(String(64), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    attempts_remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=CHALLENGE_ACTIVE,
        server_default=CHALLENGE_ACTIVE,
    )
