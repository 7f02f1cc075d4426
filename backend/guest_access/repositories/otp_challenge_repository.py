"""Repository for OtpChallenge operations.

Every state transition is a single guarded UPDATE so that concurrent verify
attempts on the same challenge resolve deterministically: the WHERE clause
re-checks ``status = 'active'`` and the row count (or RETURNING) tells the
caller whether it won.
"""

import uuid
from datetime import datetime

from sqlalchemy import case, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.models.otp_challenge import (
    CHALLENGE_ACTIVE,
    CHALLENGE_CONSUMED,
    CHALLENGE_EXHAUSTED,
    CHALLENGE_EXPIRED,
    OtpChallenge,
)


class OtpChallengeRepository:
    """Stateless repository for OtpChallenge table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        purpose: str,
        identifier: str,
        resource_id: str,
        code_salt: str,
        code_hash: str,
        created_at: datetime,
        expires_at: datetime,
        attempts_remaining: int,
    ) -> OtpChallenge:
        """Insert a new active challenge.

        Raises:
            IntegrityError: Another active challenge exists for the key
                (surfaced at flush).
        """
        challenge = OtpChallenge(
            purpose=purpose,
            identifier=identifier,
            resource_id=resource_id,
            code_salt=code_salt,
            code_hash=code_hash,
            created_at=created_at,
            expires_at=expires_at,
            attempts_remaining=attempts_remaining,
            status=CHALLENGE_ACTIVE,
        )
        db.add(challenge)
        await db.flush()
        return challenge

    @staticmethod
    async def get_latest(
        db: AsyncSession,
        *,
        purpose: str,
        identifier: str,
        resource_id: str,
    ) -> OtpChallenge | None:
        """Most recently issued challenge for a key, in any status."""
        stmt = (
            select(OtpChallenge)
            .where(
                OtpChallenge.purpose == purpose,
                OtpChallenge.identifier == identifier,
                OtpChallenge.resource_id == resource_id,
            )
            .order_by(OtpChallenge.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active(
        db: AsyncSession,
        *,
        purpose: str,
        identifier: str,
        resource_id: str,
    ) -> OtpChallenge | None:
        """The single active challenge for a key, if any."""
        stmt = (
            select(OtpChallenge)
            .where(
                OtpChallenge.purpose == purpose,
                OtpChallenge.identifier == identifier,
                OtpChallenge.resource_id == resource_id,
                OtpChallenge.status == CHALLENGE_ACTIVE,
            )
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def supersede_active(
        db: AsyncSession,
        *,
        purpose: str,
        identifier: str,
        resource_id: str,
    ) -> int:
        """Mark the active challenge for a key as expired.

        Returns:
            Number of superseded rows (0 or 1).
        """
        stmt = (
            update(OtpChallenge)
            .where(
                OtpChallenge.purpose == purpose,
                OtpChallenge.identifier == identifier,
                OtpChallenge.resource_id == resource_id,
                OtpChallenge.status == CHALLENGE_ACTIVE,
            )
            .values(status=CHALLENGE_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def mark_expired(db: AsyncSession, challenge_id: uuid.UUID) -> bool:
        """Transition ``active -> expired``.

        Returns:
            True if this call performed the transition.
        """
        stmt = (
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge_id,
                OtpChallenge.status == CHALLENGE_ACTIVE,
            )
            .values(status=CHALLENGE_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def consume(
        db: AsyncSession,
        challenge_id: uuid.UUID,
        *,
        now: datetime,
    ) -> bool:
        """Compare-and-swap ``active -> consumed``.

        The guard also requires the challenge to be unexpired and to have
        attempts left, so a racing wrong guess or the clock cannot be beaten.

        Returns:
            True if this call consumed the challenge.
        """
        stmt = (
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge_id,
                OtpChallenge.status == CHALLENGE_ACTIVE,
                OtpChallenge.attempts_remaining > 0,
                OtpChallenge.expires_at >= now,
            )
            .values(status=CHALLENGE_CONSUMED, consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return bool(result.rowcount)  # type: ignore[attr-defined]

    @staticmethod
    async def record_failed_attempt(
        db: AsyncSession,
        challenge_id: uuid.UUID,
    ) -> tuple[int, str] | None:
        """Atomically spend one attempt on a wrong guess.

        Decrements ``attempts_remaining`` and flips the status to
        ``exhausted`` when it reaches zero, in one statement.

        Returns:
            ``(attempts_remaining, status)`` after the update, or None when the
            challenge was no longer active (lost race).
        """
        stmt = (
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge_id,
                OtpChallenge.status == CHALLENGE_ACTIVE,
                OtpChallenge.attempts_remaining > 0,
            )
            .values(
                attempts_remaining=OtpChallenge.attempts_remaining - 1,
                status=case(
                    (OtpChallenge.attempts_remaining <= 1, CHALLENGE_EXHAUSTED),
                    else_=CHALLENGE_ACTIVE,
                ),
            )
            .returning(OtpChallenge.attempts_remaining, OtpChallenge.status)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return row.attempts_remaining, row.status

    @staticmethod
    async def delete_stale(db: AsyncSession, *, before: datetime) -> int:
        """Delete challenges whose validity window ended before a cutoff.

        Active challenges past expiry are included; expiry is enforced lazily
        at verification time so removing them changes no outcome.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(OtpChallenge).where(OtpChallenge.expires_at < before)
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
