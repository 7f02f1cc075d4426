"""Shared fakes and data builders for guest access unit tests.

Collaborators (order lookup, OTP sender, incident reporter) are replaced by
in-memory fakes so tests can inspect what the services handed them.
"""

from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guest_access.core.email import DeliveryError
from guest_access.core.scope import Purpose
from guest_access.models.otp_challenge import OtpChallenge
from guest_access.repositories.otp_challenge_repository import OtpChallengeRepository
from guest_access.services.abuse_guard import AbuseGuard, build_limiter
from guest_access.services.collaborators import OrderSnapshot, SecurityIncident
from guest_access.services.otp_codes import generate_salt, hash_code
from tests.conftest import TEST_AUTH_SECRET, FrozenClock

GUEST_EMAIL = "a@x.com"
OTHER_EMAIL = "someone@else.com"
DELIVERED_ORDER_ID = "ORD-1001"
PENDING_ORDER_ID = "ORD-1002"


class FakeOrderLookup:
    """In-memory OrderLookup."""

    def __init__(self, orders: list[OrderSnapshot] | None = None) -> None:
        self.orders = {order.order_id: order for order in orders or []}

    async def find_for_identifier(
        self, identifier: str, order_id: str
    ) -> OrderSnapshot | None:
        order = self.orders.get(order_id)
        if order is None or order.guest_email != identifier:
            return None
        return order

    async def has_orders(self, identifier: str) -> bool:
        return any(order.guest_email == identifier for order in self.orders.values())

    async def get(self, order_id: str) -> OrderSnapshot | None:
        return self.orders.get(order_id)

    def set_status(
        self, order_id: str, order_status: str, return_status: str | None = None
    ) -> None:
        self.orders[order_id] = replace(
            self.orders[order_id],
            order_status=order_status,
            return_status=return_status,
        )


class RecordingSender:
    """OtpSender that records codes; optionally fails the first N sends."""

    def __init__(self, failures: int = 0) -> None:
        self.sent: list[tuple[str, str, Purpose]] = []
        self.failures = failures
        self.calls = 0

    async def send(self, identifier: str, code: str, purpose: Purpose) -> None:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise DeliveryError("provider unavailable")
        self.sent.append((identifier, code, purpose))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class RecordingReporter:
    """IncidentReporter that keeps incidents in a list."""

    def __init__(self) -> None:
        self.incidents: list[SecurityIncident] = []

    async def report(self, incident: SecurityIncident) -> None:
        self.incidents.append(incident)


@pytest.fixture
def order_lookup() -> FakeOrderLookup:
    return FakeOrderLookup(
        [
            OrderSnapshot(
                order_id=DELIVERED_ORDER_ID,
                guest_email=GUEST_EMAIL,
                order_status="DELIVERED",
            ),
            OrderSnapshot(
                order_id=PENDING_ORDER_ID,
                guest_email=GUEST_EMAIL,
                order_status="PENDING",
            ),
        ]
    )


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


async def make_challenge(
    db: AsyncSession,
    *,
    code: str = "123456",
    purpose: Purpose = Purpose.DATA_DELETION,
    identifier: str = GUEST_EMAIL,
    resource_id: str = "",
    created_at: datetime,
    ttl: timedelta = timedelta(minutes=10),
    attempts_remaining: int = 5,
) -> OtpChallenge:
    """Insert an active challenge with a known code."""
    salt = generate_salt()
    challenge = await OtpChallengeRepository.create(
        db,
        purpose=purpose.value,
        identifier=identifier,
        resource_id=resource_id,
        code_salt=salt,
        code_hash=hash_code(code, salt, TEST_AUTH_SECRET),
        created_at=created_at,
        expires_at=created_at + ttl,
        attempts_remaining=attempts_remaining,
    )
    await db.commit()
    return challenge


@pytest_asyncio.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
    order_lookup: FakeOrderLookup,
    sender: RecordingSender,
    reporter: RecordingReporter,
    clock: FrozenClock,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database and fake collaborators."""
    from guest_access.api import deps
    from guest_access.core.database import get_db
    from guest_access.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    guard = AbuseGuard(build_limiter("async+memory://"), reporter, clock=clock)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_order_lookup] = lambda: order_lookup
    app.dependency_overrides[deps.get_otp_sender] = lambda: sender
    app.dependency_overrides[deps.get_incident_reporter] = lambda: reporter
    app.dependency_overrides[deps.get_abuse_guard] = lambda: guard
    app.dependency_overrides[deps.get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
