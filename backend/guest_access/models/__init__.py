"""SQLAlchemy ORM models for guest access.

All models are exported from this module for convenient imports:
    from guest_access.models import OtpChallenge, ActionToken, ...

- otp_challenge.py: OtpChallenge (owned)
- action_token.py: ActionToken (owned)
- revoked_session_token.py: RevokedSessionToken (owned)
- guest_request.py: GuestRequest (owned, outbox)
- order.py: Order (storefront table, read-only)
"""

from guest_access.models.action_token import ActionToken
from guest_access.models.base import Base, UTCDateTime
from guest_access.models.guest_request import GuestRequest
from guest_access.models.order import Order
from guest_access.models.otp_challenge import OtpChallenge
from guest_access.models.revoked_session_token import RevokedSessionToken

__all__ = [
    "Base",
    "UTCDateTime",
    "OtpChallenge",
    "ActionToken",
    "RevokedSessionToken",
    "GuestRequest",
    "Order",
]
