"""Tests for the scoped guest action endpoints.

Every endpoint accepts only a session minted for its own purpose, and the
order-scoped ones only for the order the session was verified against.
"""

import pytest

from guest_access.core.scope import Purpose
from guest_access.services.session_tokens import SessionTokenService
from tests.unit.conftest import DELIVERED_ORDER_ID, GUEST_EMAIL, PENDING_ORDER_ID

# (method, path, purpose, body)
_ENDPOINTS = [
    ("GET", "/api/v1/grievances", Purpose.GRIEVANCE_ACCESS, None),
    (
        "POST",
        "/api/v1/grievances",
        Purpose.GRIEVANCE_ACCESS,
        {"subject": "Late parcel", "message": "Still waiting"},
    ),
    ("POST", "/api/v1/data/export", Purpose.DATA_EXPORT, None),
    ("POST", "/api/v1/data/delete", Purpose.DATA_DELETION, None),
    (
        "POST",
        "/api/v1/orders/cancel",
        Purpose.ORDER_CANCELLATION,
        {"order_id": DELIVERED_ORDER_ID},
    ),
    (
        "POST",
        "/api/v1/data/correct",
        Purpose.DATA_CORRECTION,
        {"order_id": DELIVERED_ORDER_ID, "corrections": {"phone": "555-0100"}},
    ),
]


@pytest.fixture
def mint(session_factory, clock):
    """Mint session tokens directly, bypassing the OTP flow."""

    async def _mint(purpose: Purpose, resource_id: str | None = None) -> dict:
        async with session_factory() as db:
            granted = SessionTokenService(db, clock=clock).issue(
                GUEST_EMAIL, purpose, resource_id
            )
        return {"Authorization": f"Bearer {granted.token}"}

    return _mint


def _resource_for(purpose: Purpose) -> str | None:
    return DELIVERED_ORDER_ID if purpose.is_order_scoped else None


class TestScopeEnforcement:
    @pytest.mark.parametrize(("method", "path", "purpose", "body"), _ENDPOINTS)
    async def test_own_purpose_is_accepted(
        self, api_client, mint, method, path, purpose, body
    ):
        headers = await mint(purpose, _resource_for(purpose))

        response = await api_client.request(method, path, headers=headers, json=body)

        assert response.status_code in (200, 201, 202)

    @pytest.mark.parametrize(("method", "path", "purpose", "body"), _ENDPOINTS)
    async def test_every_other_purpose_is_scope_mismatch(
        self, api_client, mint, method, path, purpose, body
    ):
        for other in Purpose:
            if other == purpose or not other.is_otp_purpose:
                continue
            headers = await mint(other, _resource_for(other))

            response = await api_client.request(
                method, path, headers=headers, json=body
            )

            assert response.status_code == 403, other
            assert response.json()["error"]["code"] == "SCOPE_MISMATCH"

    @pytest.mark.parametrize(("method", "path", "purpose", "body"), _ENDPOINTS)
    async def test_missing_token_is_unauthorized(
        self, api_client, method, path, purpose, body  # noqa: ARG002
    ):
        response = await api_client.request(method, path, json=body)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_INVALID"


class TestOrderScopedActions:
    async def test_cancel_other_order_is_scope_mismatch(self, api_client, mint):
        headers = await mint(Purpose.ORDER_CANCELLATION, DELIVERED_ORDER_ID)

        response = await api_client.post(
            "/api/v1/orders/cancel",
            headers=headers,
            json={"order_id": PENDING_ORDER_ID},
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "SCOPE_MISMATCH"

    async def test_cancel_records_request_for_order(self, api_client, mint):
        headers = await mint(Purpose.ORDER_CANCELLATION, DELIVERED_ORDER_ID)

        response = await api_client.post(
            "/api/v1/orders/cancel",
            headers=headers,
            json={"order_id": DELIVERED_ORDER_ID, "reason": "Ordered twice"},
        )

        assert response.status_code == 202
        data = response.json()["data"]
        assert data["purpose"] == "order_cancellation"
        assert data["resource_id"] == DELIVERED_ORDER_ID
        assert data["status"] == "pending"
        assert data["payload"] == {"reason": "Ordered twice"}


class TestSessionLifetime:
    async def test_expired_session(self, api_client, mint, clock):
        headers = await mint(Purpose.DATA_EXPORT)
        clock.advance(minutes=15)

        response = await api_client.post("/api/v1/data/export", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    async def test_tampered_token(self, api_client, mint):
        headers = await mint(Purpose.DATA_EXPORT)
        header, _ = headers["Authorization"].rsplit(".", 1)
        headers["Authorization"] = f"{header}.bm90LXRoZS1zaWduYXR1cmU"

        response = await api_client.post("/api/v1/data/export", headers=headers)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_INVALID"


class TestGrievances:
    async def test_filed_grievances_are_listed(self, api_client, mint, clock):
        headers = await mint(Purpose.GRIEVANCE_ACCESS)
        await api_client.post(
            "/api/v1/grievances",
            headers=headers,
            json={"subject": "First", "message": "one"},
        )
        clock.advance(minutes=1)
        await api_client.post(
            "/api/v1/grievances",
            headers=headers,
            json={"subject": "Second", "message": "two"},
        )

        response = await api_client.get("/api/v1/grievances", headers=headers)

        subjects = [row["payload"]["subject"] for row in response.json()["data"]]
        assert subjects == ["Second", "First"]

    async def test_grievance_for_own_order_records_it(self, api_client, mint):
        headers = await mint(Purpose.GRIEVANCE_ACCESS)

        response = await api_client.post(
            "/api/v1/grievances",
            headers=headers,
            json={"subject": "Late", "message": "x", "order_id": DELIVERED_ORDER_ID},
        )

        assert response.status_code == 201
        assert response.json()["data"]["resource_id"] == DELIVERED_ORDER_ID

    async def test_grievance_for_unknown_order_is_not_found(self, api_client, mint):
        headers = await mint(Purpose.GRIEVANCE_ACCESS)

        response = await api_client.post(
            "/api/v1/grievances",
            headers=headers,
            json={"subject": "Late", "message": "x", "order_id": "ORD-404"},
        )
        listed = await api_client.get("/api/v1/grievances", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
        assert listed.json()["data"] == []
