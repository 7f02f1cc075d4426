"""Tests for the guest verification retention cleanup."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from guest_access.core.outcomes import FailureCode
from guest_access.core.scope import Purpose
from guest_access.repositories.action_token_repository import ActionTokenRepository
from guest_access.repositories.revoked_session_token_repository import (
    RevokedSessionTokenRepository,
)
from guest_access.services.action_tokens import ActionTokenService
from guest_access.services.retention_cleanup import (
    CleanupError,
    RetentionCleanupService,
)
from tests.conftest import TEST_NOW
from tests.unit.conftest import DELIVERED_ORDER_ID, OTHER_EMAIL, make_challenge


async def _seed(db):
    # Challenge expired three days ago, and one still live
    await make_challenge(
        db, identifier=OTHER_EMAIL, created_at=TEST_NOW - timedelta(days=3)
    )
    await make_challenge(db, created_at=TEST_NOW - timedelta(minutes=1))

    # Token "a" is past the grace period, "b" expired yesterday
    for suffix, expires in (("a", -31), ("b", -1)):
        await ActionTokenRepository.create(
            db,
            token_hash=suffix * 64,
            order_id="ORD-1001",
            purpose=Purpose.REVIEW_INVITATION.value,
            created_at=TEST_NOW - timedelta(days=60),
            expires_at=TEST_NOW + timedelta(days=expires),
        )
    await RevokedSessionTokenRepository.add(
        db,
        jti="stale",
        expires_at=TEST_NOW - timedelta(minutes=1),
        revoked_at=TEST_NOW - timedelta(minutes=10),
    )
    await db.commit()


class TestRetentionCleanup:
    async def test_removes_only_expired_rows(self, db_session, clock):
        await _seed(db_session)

        result = await RetentionCleanupService(db_session, clock=clock).run()

        assert result.otp_challenges == 1
        assert result.action_tokens == 1
        assert result.revoked_sessions == 1
        assert await ActionTokenRepository.get_by_hash(db_session, "b" * 64)

    async def test_challenge_grace_period(self, db_session, clock):
        await _seed(db_session)

        result = await RetentionCleanupService(
            db_session, clock=clock, challenge_grace=timedelta(days=7)
        ).run()

        assert result.otp_challenges == 0

    async def test_recently_expired_link_keeps_its_outcome(
        self, db_session, order_lookup, clock
    ):
        tokens = ActionTokenService(db_session, order_lookup, clock=clock)
        expired, _ = await tokens.issue(DELIVERED_ORDER_ID, ttl=timedelta(days=1))
        used, _ = await tokens.issue(DELIVERED_ORDER_ID, ttl=timedelta(days=3))
        await tokens.validate(used)
        clock.advance(days=2)

        await RetentionCleanupService(db_session, clock=clock).run()

        assert (await tokens.validate(expired)).code == FailureCode.EXPIRED
        assert (await tokens.validate(used)).code == FailureCode.ALREADY_USED

    async def test_link_past_grace_is_removed(self, db_session, order_lookup, clock):
        tokens = ActionTokenService(db_session, order_lookup, clock=clock)
        plain, _ = await tokens.issue(DELIVERED_ORDER_ID, ttl=timedelta(days=1))
        clock.advance(days=32)

        result = await RetentionCleanupService(db_session, clock=clock).run()

        assert result.action_tokens == 1
        assert (await tokens.check(plain)).code == FailureCode.TOKEN_INVALID

    async def test_second_run_is_a_no_op(self, db_session, clock):
        await _seed(db_session)
        service = RetentionCleanupService(db_session, clock=clock)
        await service.run()

        result = await service.run()

        assert result.otp_challenges == 0
        assert result.action_tokens == 0
        assert result.revoked_sessions == 0

    async def test_database_error_raises_cleanup_error(self, db_session, clock):
        with (
            patch.object(
                ActionTokenRepository,
                "delete_expired",
                new_callable=AsyncMock,
                side_effect=OperationalError("DELETE", {}, Exception("gone")),
            ),
            pytest.raises(CleanupError) as exc_info,
        ):
            await RetentionCleanupService(db_session, clock=clock).run()

        assert exc_info.value.code == "CLEANUP_ERROR"
        assert exc_info.value.status_code == 500
