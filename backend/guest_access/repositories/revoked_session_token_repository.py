"""Repository for the session token denylist."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.models.revoked_session_token import RevokedSessionToken


class RevokedSessionTokenRepository:
    """Stateless repository for RevokedSessionToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def add(
        db: AsyncSession,
        *,
        jti: str,
        expires_at: datetime,
        revoked_at: datetime,
    ) -> None:
        """Denylist a token id. Revoking twice is a no-op."""
        if await db.get(RevokedSessionToken, jti) is not None:
            return
        db.add(
            RevokedSessionToken(jti=jti, expires_at=expires_at, revoked_at=revoked_at)
        )
        await db.flush()

    @staticmethod
    async def is_revoked(db: AsyncSession, jti: str) -> bool:
        stmt = select(RevokedSessionToken.jti).where(RevokedSessionToken.jti == jti)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def delete_expired(db: AsyncSession, *, before: datetime) -> int:
        """Drop entries for tokens that have expired on their own.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(RevokedSessionToken).where(
            RevokedSessionToken.expires_at < before
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
