"""OTP email delivery via the Resend API.

Simple HTTP POST to Resend with a plain-text body. This module is the default
``OtpSender`` collaborator; the services only see the ``send`` method and can
be given a fake in tests.
"""

import logging

import httpx

from guest_access.core.config import settings
from guest_access.core.scope import Purpose, mask_email

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0

# Subject line per purpose
_SUBJECTS: dict[Purpose, str] = {
    Purpose.GRIEVANCE_ACCESS: "Your code to view or file a grievance",
    Purpose.ORDER_CANCELLATION: "Your code to cancel your order",
    Purpose.DATA_EXPORT: "Your code to download your data",
    Purpose.DATA_DELETION: "Your code to delete your data",
    Purpose.DATA_CORRECTION: "Your code to correct your order details",
}


class DeliveryError(Exception):
    """The delivery collaborator could not hand the code to the provider."""


def _otp_body(code: str, ttl_minutes: int) -> str:
    return (
        f"Your verification code is: {code}\n\n"
        f"This code is valid for {ttl_minutes} minutes and can be used once.\n"
        "If you didn't request this, you can safely ignore this email."
    )


class ResendOtpSender:
    """Sends OTP codes by email through Resend.

    Args:
        api_key: Resend API key. Defaults to settings.
        sender: From address. Defaults to settings.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float = _RESEND_TIMEOUT,
    ) -> None:
        self._api_key = (
            api_key
            if api_key is not None
            else settings.resend_api_key.get_secret_value()
        )
        self._sender = sender or settings.email_from
        self._timeout = timeout

    async def send(self, identifier: str, code: str, purpose: Purpose) -> None:
        """Send one code to one email address.

        Raises:
            DeliveryError: On transport errors or non-2xx responses.
        """
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    _RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._sender,
                        "to": identifier,
                        "subject": _SUBJECTS.get(purpose, "Your verification code"),
                        "text": _otp_body(code, settings.otp_ttl_minutes),
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "OTP email delivery failed for %s", mask_email(identifier)
            )
            raise DeliveryError(str(exc)) from exc
