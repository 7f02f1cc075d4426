"""Repository for ActionToken operations."""

import uuid
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.models.action_token import ActionToken


class ActionTokenRepository:
    """Stateless repository for ActionToken table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        token_hash: str,
        order_id: str,
        purpose: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> ActionToken:
        """Store a new action token.

        Args:
            db: Async database session.
            token_hash: SHA-256 hash of the plain token.
            order_id: Order the token is bound to.
            purpose: Purpose value.
            created_at: Issue time.
            expires_at: Expiry time.

        Returns:
            Created ActionToken.
        """
        token = ActionToken(
            token_hash=token_hash,
            order_id=order_id,
            purpose=purpose,
            created_at=created_at,
            expires_at=expires_at,
        )
        db.add(token)
        await db.flush()
        return token

    @staticmethod
    async def get_by_hash(
        db: AsyncSession,
        token_hash: str,
    ) -> ActionToken | None:
        """Look up a token by its hash.

        Returns:
            ActionToken if found, None otherwise.
        """
        stmt = (
            select(ActionToken)
            .where(ActionToken.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_used(
        db: AsyncSession,
        token_id: uuid.UUID,
        *,
        now: datetime,
    ) -> bool:
        """Compare-and-swap ``used_at`` from null to now.

        Returns:
            True if this call consumed the token.
        """
        stmt = (
            update(ActionToken)
            .where(
                ActionToken.id == token_id,
                ActionToken.used_at.is_(None),
                ActionToken.revoked_at.is_(None),
            )
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def revoke_for_order(
        db: AsyncSession,
        order_id: str,
        *,
        now: datetime,
    ) -> int:
        """Revoke every unused, unrevoked token bound to an order.

        Returns:
            Number of revoked tokens.
        """
        stmt = (
            update(ActionToken)
            .where(
                ActionToken.order_id == order_id,
                ActionToken.used_at.is_(None),
                ActionToken.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession, *, before: datetime) -> int:
        """Delete tokens that expired before a cutoff (periodic cleanup).

        Returns:
            Number of deleted rows.
        """
        stmt = delete(ActionToken).where(ActionToken.expires_at < before)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
