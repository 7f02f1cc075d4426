"""Collaborator interfaces used by the guest verification services.

The services depend only on these protocols. Production wiring lives in
``guest_access.api.deps``; tests pass fakes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.scope import Purpose
from guest_access.models.order import ORDER_DELIVERED, RETURN_NOT_REQUESTED, Order
from guest_access.repositories.order_repository import OrderRepository

# =============================================================================
# Orders
# =============================================================================


@dataclass(frozen=True)
class OrderSnapshot:
    """The parts of a storefront order this service reasons about.

    Attributes:
        order_id: Order id.
        guest_email: Lower-cased checkout email.
        order_status: Storefront order status.
        return_status: Return workflow status, None when never requested.
    """

    order_id: str
    guest_email: str
    order_status: str
    return_status: str | None = None

    @property
    def is_review_eligible(self) -> bool:
        """Delivered and not returned (or in the middle of a return)."""
        return self.order_status == ORDER_DELIVERED and self.return_status in (
            None,
            RETURN_NOT_REQUESTED,
        )


class OrderLookup(Protocol):
    """Read access to storefront orders."""

    async def find_for_identifier(
        self, identifier: str, order_id: str
    ) -> OrderSnapshot | None: ...

    async def has_orders(self, identifier: str) -> bool: ...

    async def get(self, order_id: str) -> OrderSnapshot | None: ...


def _snapshot(order: Order) -> OrderSnapshot:
    return OrderSnapshot(
        order_id=order.id,
        guest_email=order.guest_email,
        order_status=order.order_status,
        return_status=order.return_status,
    )


class SqlOrderLookup:
    """OrderLookup backed by the storefront ``orders`` table.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_for_identifier(
        self, identifier: str, order_id: str
    ) -> OrderSnapshot | None:
        order = await OrderRepository.get_for_email(
            self._db, order_id=order_id, email=identifier
        )
        return _snapshot(order) if order is not None else None

    async def has_orders(self, identifier: str) -> bool:
        return await OrderRepository.exists_for_email(self._db, identifier)

    async def get(self, order_id: str) -> OrderSnapshot | None:
        order = await OrderRepository.get_by_id(self._db, order_id)
        return _snapshot(order) if order is not None else None


# =============================================================================
# Delivery
# =============================================================================


class OtpSender(Protocol):
    """Hands a code to a transport (email, SMS).

    Implementations raise ``guest_access.core.email.DeliveryError`` when the
    provider rejects or cannot be reached.
    """

    async def send(self, identifier: str, code: str, purpose: Purpose) -> None: ...


# =============================================================================
# Security incidents
# =============================================================================

INCIDENT_RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
INCIDENT_OTP_BRUTE_FORCE = "otp_brute_force"


@dataclass(frozen=True)
class SecurityIncident:
    """A security-relevant event worth alerting on.

    Attributes:
        kind: Incident kind (``rate_limit_exceeded``, ``otp_brute_force``).
        source_ip: Client IP the event came from.
        identifier: Masked identifier involved, if any.
        occurred_at: Event time.
        details: Extra structured context.
    """

    kind: str
    source_ip: str
    identifier: str | None
    occurred_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


class IncidentReporter(Protocol):
    """Sink for security incidents. Must not raise."""

    async def report(self, incident: SecurityIncident) -> None: ...
