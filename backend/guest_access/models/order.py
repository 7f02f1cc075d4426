"""Read-only mapping of the storefront ``orders`` table.

The storefront owns this table and its migrations. Only the columns needed to
match a guest to an order and to check review eligibility are mapped.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from guest_access.models.base import Base

ORDER_DELIVERED = "DELIVERED"
RETURN_NOT_REQUESTED = "NOT_REQUESTED"


class Order(Base):
    """Storefront order (read-only).

    Attributes:
        id: Order id as shown to the customer.
        guest_email: Email given at checkout, stored lower-cased.
        order_status: Storefront order status (e.g. ``DELIVERED``).
        return_status: Return workflow status, null when never requested.
    """

    __tablename__ = "orders"
    __table_args__ = {"info": {"external": True}}

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    guest_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    order_status: Mapped[str] = mapped_column(String(32), nullable=False)
    return_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
