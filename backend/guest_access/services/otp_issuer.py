"""OTP issuance.

Flow for ``issue(purpose, identifier, resource_id)``:

1. Validate the email and match it against storefront orders (one generic
   NOT_FOUND for every mismatch, so callers cannot tell which part failed).
2. Enforce the resend cooldown, measured from the latest issuance for the
   (purpose, identifier, resource_id) key.
3. Supersede the previous active challenge, store the new one and commit.
4. Hand the code to the delivery collaborator with retry and backoff.

The challenge is committed before delivery so no store transaction is open
while the network call runs. If delivery ultimately fails the challenge stays
valid; a code that did arrive late can still be used.
"""

import logging
import math
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.email import DeliveryError
from guest_access.core.outcomes import (
    ChallengeIssued,
    FailureCode,
    IssueOutcome,
    failure,
)
from guest_access.core.retry import RetryPolicy, with_retries
from guest_access.core.scope import (
    Purpose,
    is_valid_email,
    mask_email,
    normalize_email,
    scope_resource_id,
)
from guest_access.models.otp_challenge import CHALLENGE_ACTIVE, CHALLENGE_EXHAUSTED
from guest_access.repositories.otp_challenge_repository import OtpChallengeRepository
from guest_access.services.collaborators import OrderLookup, OtpSender
from guest_access.services.otp_codes import generate_code, generate_salt, hash_code

logger = logging.getLogger(__name__)

# Statuses that still count toward the resend cooldown
_COOLDOWN_STATUSES = (CHALLENGE_ACTIVE, CHALLENGE_EXHAUSTED)


def default_delivery_policy() -> RetryPolicy:
    """Delivery retry policy from settings."""
    return RetryPolicy(
        max_retries=settings.delivery_max_retries,
        base_delay_ms=settings.delivery_retry_base_delay_ms,
        max_delay_ms=settings.delivery_retry_max_delay_ms,
    )


class OtpIssuer:
    """Creates OTP challenges and dispatches codes.

    Args:
        db: Async database session.
        order_lookup: Storefront order reader.
        sender: Delivery collaborator.
        clock: Time source.
        retry_policy: Delivery retry policy. Defaults to settings.
    """

    def __init__(
        self,
        db: AsyncSession,
        order_lookup: OrderLookup,
        sender: OtpSender,
        *,
        clock: Clock = utc_now,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._db = db
        self._orders = order_lookup
        self._sender = sender
        self._clock = clock
        self._retry_policy = retry_policy or default_delivery_policy()
        self._secret = settings.auth_secret.get_secret_value()
        self._ttl = timedelta(minutes=settings.otp_ttl_minutes)
        self._cooldown = timedelta(seconds=settings.otp_resend_cooldown_seconds)

    async def _matches_order(
        self, purpose: Purpose, identifier: str, resource_id: str
    ) -> bool:
        if purpose.is_order_scoped:
            if not resource_id:
                return False
            order = await self._orders.find_for_identifier(identifier, resource_id)
            return order is not None
        return await self._orders.has_orders(identifier)

    async def issue(
        self,
        purpose: Purpose,
        identifier: str,
        resource_id: str | None = None,
    ) -> IssueOutcome:
        """Issue a new code for (purpose, identifier, resource_id).

        Returns:
            ChallengeIssued with the expiry, or NOT_FOUND / TOO_SOON /
            DELIVERY_FAILED / SERVICE_UNAVAILABLE.
        """
        if not purpose.is_otp_purpose:
            return failure(FailureCode.NOT_FOUND)

        email = normalize_email(identifier)
        if not is_valid_email(email):
            return failure(FailureCode.NOT_FOUND)
        rid = scope_resource_id(purpose, resource_id)

        try:
            if not await self._matches_order(purpose, email, rid):
                logger.info(
                    "OTP requested with no matching order for %s (%s)",
                    mask_email(email),
                    purpose.value,
                )
                return failure(FailureCode.NOT_FOUND)

            now = self._clock()
            latest = await OtpChallengeRepository.get_latest(
                self._db, purpose=purpose.value, identifier=email, resource_id=rid
            )
            if latest is not None and latest.status in _COOLDOWN_STATUSES:
                ready_at = latest.created_at + self._cooldown
                if now < ready_at:
                    wait = math.ceil((ready_at - now).total_seconds())
                    return failure(FailureCode.TOO_SOON, retry_after_seconds=wait)

            await OtpChallengeRepository.supersede_active(
                self._db, purpose=purpose.value, identifier=email, resource_id=rid
            )
            code = generate_code()
            salt = generate_salt()
            challenge = await OtpChallengeRepository.create(
                self._db,
                purpose=purpose.value,
                identifier=email,
                resource_id=rid,
                code_salt=salt,
                code_hash=hash_code(code, salt, self._secret),
                created_at=now,
                expires_at=now + self._ttl,
                attempts_remaining=settings.otp_max_attempts,
            )
            expires_at = challenge.expires_at
            await self._db.commit()
        except IntegrityError:
            # A concurrent issue for the same key won the partial unique index.
            await self._db.rollback()
            return failure(
                FailureCode.TOO_SOON,
                retry_after_seconds=int(self._cooldown.total_seconds()),
            )
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Challenge store unavailable during OTP issue")
            return failure(FailureCode.SERVICE_UNAVAILABLE)

        try:
            await with_retries(
                lambda: self._sender.send(email, code, purpose),
                self._retry_policy,
                (DeliveryError,),
            )
        except DeliveryError:
            logger.error(
                "OTP delivery failed for %s (%s) after retries",
                mask_email(email),
                purpose.value,
            )
            return failure(FailureCode.DELIVERY_FAILED)

        logger.info("OTP issued for %s (%s)", mask_email(email), purpose.value)
        return ChallengeIssued(expires_at=expires_at)
