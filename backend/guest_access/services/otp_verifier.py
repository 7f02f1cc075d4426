"""OTP verification.

Challenge state machine::

    active --correct code--> consumed
    active --past expiry---> expired
    active --last attempt--> exhausted

Terminal states never change again. Each transition is one guarded UPDATE
(see OtpChallengeRepository), so concurrent guesses against the same
challenge cannot both succeed or drive ``attempts_remaining`` below zero.

Verification fails closed: if the store errors, the caller gets
INVALID_OR_EXPIRED, never a session.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.outcomes import FailureCode, VerifyOutcome, failure
from guest_access.core.scope import (
    Purpose,
    mask_email,
    normalize_email,
    scope_resource_id,
)
from guest_access.models.otp_challenge import CHALLENGE_EXHAUSTED
from guest_access.repositories.otp_challenge_repository import OtpChallengeRepository
from guest_access.services.otp_codes import code_matches
from guest_access.services.session_tokens import SessionTokenService

logger = logging.getLogger(__name__)


class OtpVerifier:
    """Checks submitted codes and exchanges them for session tokens.

    Args:
        db: Async database session.
        session_tokens: Token issuer used on success.
        clock: Time source.
    """

    def __init__(
        self,
        db: AsyncSession,
        session_tokens: SessionTokenService,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._db = db
        self._session_tokens = session_tokens
        self._clock = clock
        self._secret = settings.auth_secret.get_secret_value()

    async def verify(
        self,
        purpose: Purpose,
        identifier: str,
        code: str,
        resource_id: str | None = None,
    ) -> VerifyOutcome:
        """Verify a code for (purpose, identifier, resource_id).

        Returns:
            SessionGranted, or INVALID_OR_EXPIRED / INVALID_CODE (with
            attempts_remaining) / ATTEMPTS_EXHAUSTED.
        """
        try:
            return await self._verify(purpose, identifier, code, resource_id)
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Challenge store error during OTP verification")
            return failure(FailureCode.INVALID_OR_EXPIRED)

    async def _verify(
        self,
        purpose: Purpose,
        identifier: str,
        code: str,
        resource_id: str | None,
    ) -> VerifyOutcome:
        if not purpose.is_otp_purpose:
            return failure(FailureCode.INVALID_OR_EXPIRED)

        email = normalize_email(identifier)
        rid = scope_resource_id(purpose, resource_id)

        challenge = await OtpChallengeRepository.get_active(
            self._db, purpose=purpose.value, identifier=email, resource_id=rid
        )
        if challenge is None:
            return failure(FailureCode.INVALID_OR_EXPIRED)

        now = self._clock()
        if now > challenge.expires_at:
            await OtpChallengeRepository.mark_expired(self._db, challenge.id)
            await self._db.commit()
            return failure(FailureCode.INVALID_OR_EXPIRED)

        matched = code_matches(
            code.strip(), challenge.code_salt, challenge.code_hash, self._secret
        )
        if matched:
            consumed = await OtpChallengeRepository.consume(
                self._db, challenge.id, now=now
            )
            await self._db.commit()
            if not consumed:
                return failure(FailureCode.INVALID_OR_EXPIRED)
            logger.info("OTP verified for %s (%s)", mask_email(email), purpose.value)
            return self._session_tokens.issue(email, purpose, rid or None)

        spent = await OtpChallengeRepository.record_failed_attempt(
            self._db, challenge.id
        )
        await self._db.commit()
        if spent is None:
            return failure(FailureCode.INVALID_OR_EXPIRED)

        remaining, status = spent
        if status == CHALLENGE_EXHAUSTED:
            logger.warning(
                "OTP attempts exhausted for %s (%s)", mask_email(email), purpose.value
            )
            return failure(FailureCode.ATTEMPTS_EXHAUSTED)
        return failure(FailureCode.INVALID_CODE, attempts_remaining=remaining)
