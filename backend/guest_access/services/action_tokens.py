"""Single-use action tokens for emailed deep links.

Order-lifecycle collaborators call ``issue`` (for example when an order is
delivered) and embed the plain token in an email. The guest's click is
checked with ``check`` (render the form, nothing consumed) and spent with
``validate`` (exactly once).

Eligibility of the bound order is re-read from the order collaborator on
every check, so a token issued for a delivered order stops working once the
order is cancelled or returned even if ``revoke_for_order`` was never
called.
"""

import hashlib
import logging
import secrets
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.outcomes import (
    ActionGrant,
    ActionOutcome,
    FailureCode,
    failure,
)
from guest_access.core.scope import ACTION_TOKEN_PURPOSES, Purpose
from guest_access.models.action_token import ActionToken
from guest_access.repositories.action_token_repository import ActionTokenRepository
from guest_access.services.collaborators import OrderLookup

logger = logging.getLogger(__name__)

_TOKEN_BYTES = 32


def hash_action_token(token: str) -> str:
    """SHA-256 hex digest of a plain action token."""
    return hashlib.sha256(token.encode()).hexdigest()


class ActionTokenService:
    """Issues, checks and consumes action tokens.

    Args:
        db: Async database session.
        order_lookup: Storefront order reader for eligibility checks.
        clock: Time source.
    """

    def __init__(
        self,
        db: AsyncSession,
        order_lookup: OrderLookup,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._db = db
        self._orders = order_lookup
        self._clock = clock

    async def issue(
        self,
        order_id: str,
        purpose: Purpose = Purpose.REVIEW_INVITATION,
        ttl: timedelta | None = None,
    ) -> tuple[str, ActionToken]:
        """Create a token for an order.

        Args:
            order_id: Order the link acts on.
            purpose: Action-token purpose.
            ttl: Lifetime. Defaults to ``ACTION_TOKEN_TTL_DAYS``.

        Returns:
            Tuple of (plain token, stored ActionToken). The plain token is not
            recoverable afterwards.

        Raises:
            ValueError: If purpose is not an action-token purpose.
        """
        if purpose not in ACTION_TOKEN_PURPOSES:
            msg = f"{purpose.value} is not an action-token purpose"
            raise ValueError(msg)

        now = self._clock()
        lifetime = ttl or timedelta(days=settings.action_token_ttl_days)
        plain = secrets.token_urlsafe(_TOKEN_BYTES)
        token = await ActionTokenRepository.create(
            self._db,
            token_hash=hash_action_token(plain),
            order_id=order_id,
            purpose=purpose.value,
            created_at=now,
            expires_at=now + lifetime,
        )
        await self._db.commit()
        return plain, token

    async def _evaluate(self, token: str) -> tuple[ActionToken | None, ActionOutcome]:
        """Shared checks for check/validate, in precedence order."""
        record = await ActionTokenRepository.get_by_hash(
            self._db, hash_action_token(token)
        )
        if record is None:
            return None, failure(FailureCode.TOKEN_INVALID)
        if record.used_at is not None:
            return record, failure(FailureCode.ALREADY_USED)
        if record.revoked_at is not None:
            return record, failure(FailureCode.ORDER_STATE_INVALID)
        if self._clock() > record.expires_at:
            return record, failure(FailureCode.EXPIRED)

        order = await self._orders.get(record.order_id)
        if order is None or not order.is_review_eligible:
            return record, failure(FailureCode.ORDER_STATE_INVALID)

        return record, ActionGrant(
            order_id=record.order_id,
            purpose=Purpose(record.purpose),
            guest_email=order.guest_email,
        )

    async def check(self, token: str) -> ActionOutcome:
        """Validate without consuming (used to render the form)."""
        try:
            _, outcome = await self._evaluate(token)
        except SQLAlchemyError:
            logger.exception("Action token store error during check")
            return failure(FailureCode.SERVICE_UNAVAILABLE)
        return outcome

    async def validate(self, token: str, *, commit: bool = True) -> ActionOutcome:
        """Consume a token exactly once.

        Args:
            token: Plain token from the link.
            commit: When False the consumption is only flushed, so the caller
                commits it together with the work the token authorizes. A
                rollback then leaves the token unused.

        Returns:
            ActionGrant with the bound order, or TOKEN_INVALID / ALREADY_USED /
            EXPIRED / ORDER_STATE_INVALID / SERVICE_UNAVAILABLE.
        """
        try:
            record, outcome = await self._evaluate(token)
            if record is None or not isinstance(outcome, ActionGrant):
                return outcome

            used = await ActionTokenRepository.mark_used(
                self._db, record.id, now=self._clock()
            )
            if commit:
                await self._db.commit()
            else:
                await self._db.flush()
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Action token store error during validation")
            return failure(FailureCode.SERVICE_UNAVAILABLE)

        if not used:
            return failure(FailureCode.ALREADY_USED)
        logger.info("Action token consumed for order %s", outcome.order_id)
        return outcome

    async def revoke_for_order(self, order_id: str) -> int:
        """Revoke all unused tokens of an order that became ineligible.

        Returns:
            Number of revoked tokens.
        """
        count = await ActionTokenRepository.revoke_for_order(
            self._db, order_id, now=self._clock()
        )
        await self._db.commit()
        if count:
            logger.info("Revoked %d action token(s) for order %s", count, order_id)
        return count
