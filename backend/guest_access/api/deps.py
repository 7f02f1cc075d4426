"""Shared dependencies for API endpoints.

Wires the guest verification services to their collaborators and provides
the bearer-token helpers used by every scoped endpoint.

Tests override collaborators and the clock via app.dependency_overrides.
"""

from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.database import get_db
from guest_access.core.email import ResendOtpSender
from guest_access.core.errors import GuestAuthError
from guest_access.core.outcomes import (
    FailureCode,
    GuestAuthFailure,
    SessionClaims,
    failure,
)
from guest_access.core.rate_limiting import get_client_ip
from guest_access.core.scope import Purpose
from guest_access.services.abuse_guard import AbuseGuard, build_limiter
from guest_access.services.action_tokens import ActionTokenService
from guest_access.services.collaborators import (
    IncidentReporter,
    OrderLookup,
    OtpSender,
    SqlOrderLookup,
)
from guest_access.services.incident_reporter import (
    LoggingIncidentReporter,
    WebhookIncidentReporter,
)
from guest_access.services.otp_issuer import OtpIssuer
from guest_access.services.otp_verifier import OtpVerifier
from guest_access.services.session_tokens import SessionTokenService

_BEARER_PREFIX = "bearer "

DbSession = Annotated[AsyncSession, Depends(get_db)]
ClientIp = Annotated[str, Depends(get_client_ip)]


# =============================================================================
# Collaborators
# =============================================================================


def get_clock() -> Clock:
    return utc_now


def get_order_lookup(db: DbSession) -> OrderLookup:
    return SqlOrderLookup(db)


@lru_cache(maxsize=1)
def get_otp_sender() -> OtpSender:
    return ResendOtpSender()


@lru_cache(maxsize=1)
def get_incident_reporter() -> IncidentReporter:
    """Webhook reporter when INCIDENT_WEBHOOK_URL is set, log-only otherwise."""
    if settings.incident_webhook_url:
        token = settings.incident_webhook_token.get_secret_value() or None
        return WebhookIncidentReporter(settings.incident_webhook_url, token=token)
    return LoggingIncidentReporter()


@lru_cache(maxsize=1)
def get_abuse_guard() -> AbuseGuard:
    """Process-wide guard; counters live in the configured limits storage."""
    return AbuseGuard(
        build_limiter(),
        get_incident_reporter(),
        enabled=settings.abuse_guard_enabled,
    )


# =============================================================================
# Services
# =============================================================================


def get_session_token_service(
    db: DbSession,
    clock: Annotated[Clock, Depends(get_clock)],
) -> SessionTokenService:
    return SessionTokenService(db, clock=clock)


def get_otp_issuer(
    db: DbSession,
    order_lookup: Annotated[OrderLookup, Depends(get_order_lookup)],
    sender: Annotated[OtpSender, Depends(get_otp_sender)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> OtpIssuer:
    return OtpIssuer(db, order_lookup, sender, clock=clock)


def get_otp_verifier(
    db: DbSession,
    session_tokens: Annotated[SessionTokenService, Depends(get_session_token_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> OtpVerifier:
    return OtpVerifier(db, session_tokens, clock=clock)


def get_action_token_service(
    db: DbSession,
    order_lookup: Annotated[OrderLookup, Depends(get_order_lookup)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> ActionTokenService:
    return ActionTokenService(db, order_lookup, clock=clock)


# Reusable type aliases for dependency injection
SessionTokens = Annotated[SessionTokenService, Depends(get_session_token_service)]
Issuer = Annotated[OtpIssuer, Depends(get_otp_issuer)]
Verifier = Annotated[OtpVerifier, Depends(get_otp_verifier)]
ActionTokens = Annotated[ActionTokenService, Depends(get_action_token_service)]
Guard = Annotated[AbuseGuard, Depends(get_abuse_guard)]


# =============================================================================
# Session authorization
# =============================================================================


def get_bearer_token(request: Request) -> str:
    """Session token from ``Authorization: Bearer <token>``.

    Raises:
        GuestAuthError: TOKEN_INVALID when the header is missing or malformed.
    """
    header = request.headers.get("authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        raise GuestAuthError(failure(FailureCode.TOKEN_INVALID))
    token = header[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise GuestAuthError(failure(FailureCode.TOKEN_INVALID))
    return token


BearerToken = Annotated[str, Depends(get_bearer_token)]


async def authorize_session(
    session_tokens: SessionTokenService,
    token: str,
    purpose: Purpose,
    resource_id: str | None = None,
) -> SessionClaims:
    """Validate a session token for one fixed purpose (and order).

    Raises:
        GuestAuthError: TOKEN_INVALID, TOKEN_EXPIRED or SCOPE_MISMATCH.
    """
    result = await session_tokens.validate(token, purpose, resource_id)
    if isinstance(result, GuestAuthFailure):
        raise GuestAuthError(result)
    return result


def require_session(
    purpose: Purpose,
) -> Callable[[SessionTokenService, str], Awaitable[SessionClaims]]:
    """Dependency factory for email-scoped endpoints.

    Order-scoped endpoints call ``authorize_session`` themselves with the
    order id from the request body.
    """

    async def dependency(
        session_tokens: SessionTokens,
        token: BearerToken,
    ) -> SessionClaims:
        return await authorize_session(session_tokens, token, purpose)

    return dependency
