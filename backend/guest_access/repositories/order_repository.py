"""Read-only queries against the storefront ``orders`` table."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.models.order import Order


class OrderRepository:
    """Stateless repository for Order reads.

    All methods are static; no instance state. This service never writes
    orders.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, order_id: str) -> Order | None:
        return await db.get(Order, order_id)

    @staticmethod
    async def get_for_email(
        db: AsyncSession,
        *,
        order_id: str,
        email: str,
    ) -> Order | None:
        """Order matching both id and (lower-cased) guest email."""
        stmt = select(Order).where(
            Order.id == order_id,
            Order.guest_email == email,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def exists_for_email(db: AsyncSession, email: str) -> bool:
        stmt = select(Order.id).where(Order.guest_email == email).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None
