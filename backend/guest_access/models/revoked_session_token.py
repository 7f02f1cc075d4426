"""Revoked session token model.

Session tokens are stateless JWTs; a revoked ``jti`` is kept here until the
token would have expired anyway.
"""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from guest_access.models.base import Base


class RevokedSessionToken(Base):
    """Denylist entry for one session token id."""

    __tablename__ = "revoked_session_tokens"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    revoked_at: Mapped[datetime] = mapped_column(nullable=False)
