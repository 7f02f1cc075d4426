"""Retention cleanup for guest verification records.

Storage hygiene only: expiry is always enforced lazily when a challenge or
token is used. Challenges and action tokens are kept for a grace period past
expiry, so a late click on an expired or used link still gets EXPIRED or
ALREADY_USED instead of being reported as an unknown token.

Three cleanup jobs:
- OTP challenges whose validity window has ended (any status)
- Action tokens past expiry plus grace (used, revoked or never clicked)
- Session revocations for tokens that have expired on their own
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.errors import APIError
from guest_access.repositories.action_token_repository import ActionTokenRepository
from guest_access.repositories.otp_challenge_repository import OtpChallengeRepository
from guest_access.repositories.revoked_session_token_repository import (
    RevokedSessionTokenRepository,
)

logger = logging.getLogger(__name__)

# Expired challenges are kept briefly for incident investigation
_CHALLENGE_GRACE = timedelta(days=1)

# Expired and used review links keep their outcome for this long
_ACTION_TOKEN_GRACE = timedelta(days=30)


@dataclass(frozen=True)
class CleanupResult:
    """Aggregate result of one cleanup run.

    Attributes:
        otp_challenges: OTP challenges deleted.
        action_tokens: Expired action tokens deleted.
        revoked_sessions: Stale revocation entries deleted.
    """

    otp_challenges: int
    action_tokens: int
    revoked_sessions: int


class CleanupError(APIError):
    """Raised when a cleanup operation fails at the database level."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="CLEANUP_ERROR",
            message=message,
            status_code=500,
        )


class RetentionCleanupService:
    """Purges terminal and expired guest verification rows.

    Args:
        db: Async database session.
        clock: Time source.
        challenge_grace: How long past expiry challenges are kept.
        action_token_grace: How long past expiry action tokens are kept.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Clock = utc_now,
        challenge_grace: timedelta = _CHALLENGE_GRACE,
        action_token_grace: timedelta = _ACTION_TOKEN_GRACE,
    ) -> None:
        self._db = db
        self._clock = clock
        self._challenge_grace = challenge_grace
        self._action_token_grace = action_token_grace

    async def run(self) -> CleanupResult:
        """Run all cleanup jobs in one transaction.

        Raises:
            CleanupError: If the database operation fails.
        """
        now = self._clock()
        try:
            challenges = await OtpChallengeRepository.delete_stale(
                self._db, before=now - self._challenge_grace
            )
            action_tokens = await ActionTokenRepository.delete_expired(
                self._db, before=now - self._action_token_grace
            )
            revoked = await RevokedSessionTokenRepository.delete_expired(
                self._db, before=now
            )
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error("Guest auth retention cleanup failed: %s", exc)
            raise CleanupError("Guest auth retention cleanup failed") from exc

        result = CleanupResult(
            otp_challenges=challenges,
            action_tokens=action_tokens,
            revoked_sessions=revoked,
        )
        logger.info(
            "Retention cleanup removed %d challenge(s), %d action token(s), "
            "%d revocation(s)",
            result.otp_challenges,
            result.action_tokens,
            result.revoked_sessions,
        )
        return result
