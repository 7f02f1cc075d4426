"""Purposes and identifier normalization for guest verification.

A purpose names the single action a code or token authorizes. Binding every
challenge and token to one purpose stops a code minted for one action being
replayed for another.
"""

from enum import Enum

from email_validator import EmailNotValidError, validate_email


class Purpose(str, Enum):
    """Closed set of guest action purposes."""

    GRIEVANCE_ACCESS = "grievance_access"
    ORDER_CANCELLATION = "order_cancellation"
    DATA_EXPORT = "data_export"
    DATA_DELETION = "data_deletion"
    DATA_CORRECTION = "data_correction"
    REVIEW_INVITATION = "review_invitation"

    @property
    def is_otp_purpose(self) -> bool:
        """True for purposes verified through an emailed OTP."""
        return self in OTP_PURPOSES

    @property
    def is_order_scoped(self) -> bool:
        """True when the purpose is bound to one order (resource id required)."""
        return self in ORDER_SCOPED_PURPOSES


OTP_PURPOSES: frozenset[Purpose] = frozenset(
    {
        Purpose.GRIEVANCE_ACCESS,
        Purpose.ORDER_CANCELLATION,
        Purpose.DATA_EXPORT,
        Purpose.DATA_DELETION,
        Purpose.DATA_CORRECTION,
    }
)

ORDER_SCOPED_PURPOSES: frozenset[Purpose] = frozenset(
    {Purpose.ORDER_CANCELLATION, Purpose.DATA_CORRECTION}
)

ACTION_TOKEN_PURPOSES: frozenset[Purpose] = frozenset({Purpose.REVIEW_INVITATION})


def normalize_email(identifier: str) -> str:
    """Trim and lower-case an email identifier."""
    return identifier.strip().lower()


def is_valid_email(identifier: str) -> bool:
    """Syntactic email check (no DNS lookup)."""
    try:
        validate_email(identifier, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def scope_resource_id(purpose: Purpose, resource_id: str | None) -> str:
    """Resource id stored on a challenge key.

    Email-scoped purposes ignore any submitted resource id so the key stays
    (purpose, email). Order-scoped purposes keep the trimmed order id.
    """
    if not purpose.is_order_scoped or resource_id is None:
        return ""
    return resource_id.strip()


def mask_email(identifier: str) -> str:
    """Mask an email for log lines: ``alice@example.com`` -> ``a***@example.com``."""
    local, sep, domain = identifier.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"
