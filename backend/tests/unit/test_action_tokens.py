"""Tests for single-use action tokens (review invitations)."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from guest_access.core.outcomes import FailureCode
from guest_access.core.scope import Purpose
from guest_access.services.action_tokens import ActionTokenService, hash_action_token
from tests.unit.conftest import DELIVERED_ORDER_ID, GUEST_EMAIL, PENDING_ORDER_ID


@pytest.fixture
def service(db_session, order_lookup, clock):
    return ActionTokenService(db_session, order_lookup, clock=clock)


class TestIssue:
    async def test_stores_only_hash(self, service):
        plain, stored = await service.issue(DELIVERED_ORDER_ID)

        assert stored.token_hash == hash_action_token(plain)
        assert plain not in stored.token_hash

    async def test_default_lifetime_is_thirty_days(self, service, clock):
        _, stored = await service.issue(DELIVERED_ORDER_ID)

        assert stored.expires_at == clock.now + timedelta(days=30)
        assert stored.purpose == "review_invitation"

    async def test_custom_ttl(self, service, clock):
        _, stored = await service.issue(DELIVERED_ORDER_ID, ttl=timedelta(days=7))

        assert stored.expires_at == clock.now + timedelta(days=7)

    async def test_rejects_otp_purpose(self, service):
        with pytest.raises(ValueError, match="not an action-token purpose"):
            await service.issue(DELIVERED_ORDER_ID, Purpose.DATA_EXPORT)


class TestValidate:
    async def test_first_use_returns_order(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        grant = await service.validate(plain)

        assert grant.order_id == DELIVERED_ORDER_ID
        assert grant.purpose is Purpose.REVIEW_INVITATION
        assert grant.guest_email == GUEST_EMAIL

    async def test_uncommitted_use_is_undone_by_rollback(self, service, db_session):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        first = await service.validate(plain, commit=False)
        await db_session.rollback()
        retry = await service.validate(plain)

        assert first.order_id == DELIVERED_ORDER_ID
        assert retry.order_id == DELIVERED_ORDER_ID

    async def test_uncommitted_use_blocks_reuse_in_same_transaction(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        await service.validate(plain, commit=False)
        second = await service.validate(plain, commit=False)

        assert second.code == FailureCode.ALREADY_USED

    async def test_second_use_is_already_used(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        await service.validate(plain)
        second = await service.validate(plain)

        assert second.code == FailureCode.ALREADY_USED
        assert second.status_code == 410

    async def test_unknown_token(self, service):
        result = await service.validate("no-such-token")

        assert result.code == FailureCode.TOKEN_INVALID

    async def test_expired(self, service, clock):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        clock.advance(days=31)

        result = await service.validate(plain)

        assert result.code == FailureCode.EXPIRED

    async def test_order_cancelled_after_issue(self, service, order_lookup):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        order_lookup.set_status(DELIVERED_ORDER_ID, "CANCELLED")

        result = await service.validate(plain)

        assert result.code == FailureCode.ORDER_STATE_INVALID
        assert result.status_code == 409

    async def test_order_returned_after_issue(self, service, order_lookup):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        order_lookup.set_status(DELIVERED_ORDER_ID, "DELIVERED", "RETURN_REQUESTED")

        result = await service.validate(plain)

        assert result.code == FailureCode.ORDER_STATE_INVALID

    async def test_order_never_delivered(self, service):
        plain, _ = await service.issue(PENDING_ORDER_ID)

        result = await service.validate(plain)

        assert result.code == FailureCode.ORDER_STATE_INVALID

    async def test_ineligible_order_does_not_consume_token(
        self, service, order_lookup
    ):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        order_lookup.set_status(DELIVERED_ORDER_ID, "CANCELLED")
        await service.validate(plain)
        order_lookup.set_status(DELIVERED_ORDER_ID, "DELIVERED")

        grant = await service.validate(plain)

        assert grant.order_id == DELIVERED_ORDER_ID

    async def test_store_error_is_service_unavailable(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        with patch(
            "guest_access.services.action_tokens.ActionTokenRepository.mark_used",
            new_callable=AsyncMock,
            side_effect=OperationalError("UPDATE", {}, Exception("db down")),
        ):
            result = await service.validate(plain)

        assert result.code == FailureCode.SERVICE_UNAVAILABLE


class TestCheck:
    async def test_check_does_not_consume(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        first = await service.check(plain)
        second = await service.check(plain)
        grant = await service.validate(plain)

        assert first == second == grant

    async def test_check_after_use(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        await service.validate(plain)

        result = await service.check(plain)

        assert result.code == FailureCode.ALREADY_USED


class TestRevokeForOrder:
    async def test_revoked_tokens_are_order_state_invalid(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)

        revoked = await service.revoke_for_order(DELIVERED_ORDER_ID)
        result = await service.validate(plain)

        assert revoked == 1
        assert result.code == FailureCode.ORDER_STATE_INVALID

    async def test_used_tokens_are_not_revoked(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        await service.validate(plain)

        assert await service.revoke_for_order(DELIVERED_ORDER_ID) == 0

    async def test_other_orders_untouched(self, service):
        plain, _ = await service.issue(DELIVERED_ORDER_ID)
        await service.issue(PENDING_ORDER_ID)

        await service.revoke_for_order(PENDING_ORDER_ID)
        grant = await service.validate(plain)

        assert grant.order_id == DELIVERED_ORDER_ID
