"""Purpose-scoped session tokens.

A session token is an HS256 JWT minted only after a successful OTP
verification. It binds the verified identifier to exactly one purpose and,
for order-scoped purposes, one order id:

    {"sub": email, "purpose": ..., "rid": order_id?, "iat", "exp", "jti",
     "aud", "iss"}

Tokens are stateless; logout adds the ``jti`` to a denylist that is kept
until the token's natural expiry.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.outcomes import (
    FailureCode,
    SessionClaims,
    SessionGranted,
    SessionOutcome,
    failure,
)
from guest_access.core.scope import Purpose
from guest_access.repositories.revoked_session_token_repository import (
    RevokedSessionTokenRepository,
)

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "purpose", "iat", "exp", "jti", "aud", "iss"]


class SessionTokenService:
    """Issues, validates and revokes session tokens.

    Args:
        db: Async database session (revocation denylist).
        clock: Time source.
        secret: Signing secret. Defaults to ``AUTH_SECRET``.
        ttl: Token lifetime. Defaults to ``SESSION_TOKEN_TTL_MINUTES``.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Clock = utc_now,
        secret: str | None = None,
        ttl: timedelta | None = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._secret = (
            secret if secret is not None else settings.auth_secret.get_secret_value()
        )
        self._ttl = ttl or timedelta(minutes=settings.session_token_ttl_minutes)

    def issue(
        self,
        identifier: str,
        purpose: Purpose,
        resource_id: str | None = None,
    ) -> SessionGranted:
        """Mint a token for a verified identifier.

        Only the OTP verifier calls this; no route mints tokens directly.
        """
        now = self._clock().replace(microsecond=0)
        expires_at = now + self._ttl
        token_id = uuid.uuid4().hex
        payload: dict[str, object] = {
            "sub": identifier,
            "purpose": purpose.value,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": token_id,
            "aud": settings.session_token_audience,
            "iss": settings.auth_issuer,
        }
        if resource_id:
            payload["rid"] = resource_id

        token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        claims = SessionClaims(
            identifier=identifier,
            purpose=purpose,
            resource_id=resource_id or None,
            token_id=token_id,
            issued_at=now,
            expires_at=expires_at,
        )
        return SessionGranted(token=token, claims=claims)

    def _decode(self, token: str) -> SessionClaims | None:
        """Verify signature, audience and issuer; return claims or None."""
        try:
            # Expiry is checked against the injected clock, not wall time.
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=settings.session_token_audience,
                issuer=settings.auth_issuer,
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
            purpose = Purpose(payload["purpose"])
            claims = SessionClaims(
                identifier=str(payload["sub"]),
                purpose=purpose,
                resource_id=payload.get("rid"),
                token_id=str(payload["jti"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), UTC),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), UTC),
            )
        except (jwt.InvalidTokenError, ValueError, TypeError, KeyError):
            return None
        return claims

    async def validate(
        self,
        token: str,
        expected_purpose: Purpose,
        expected_resource_id: str | None = None,
    ) -> SessionOutcome:
        """Check a presented token against the caller's fixed scope.

        Args:
            token: Bearer token from the request.
            expected_purpose: The one purpose the calling endpoint serves.
            expected_resource_id: Order id for order-scoped endpoints.

        Returns:
            The token's claims, or TOKEN_INVALID / TOKEN_EXPIRED /
            SCOPE_MISMATCH.
        """
        claims = self._decode(token)
        if claims is None:
            return failure(FailureCode.TOKEN_INVALID)

        if self._clock() >= claims.expires_at:
            return failure(FailureCode.TOKEN_EXPIRED)

        try:
            revoked = await RevokedSessionTokenRepository.is_revoked(
                self._db, claims.token_id
            )
        except SQLAlchemyError:
            logger.exception("Session revocation lookup failed")
            return failure(FailureCode.TOKEN_INVALID)
        if revoked:
            return failure(FailureCode.TOKEN_INVALID)

        if claims.purpose is not expected_purpose:
            return failure(FailureCode.SCOPE_MISMATCH)
        if expected_resource_id is not None and (
            claims.resource_id != expected_resource_id.strip()
        ):
            return failure(FailureCode.SCOPE_MISMATCH)

        return claims

    async def revoke(self, token: str) -> SessionOutcome:
        """Denylist a token until its expiry (guest logout).

        Returns:
            Claims of the revoked token, or TOKEN_INVALID / TOKEN_EXPIRED /
            SERVICE_UNAVAILABLE.
        """
        claims = self._decode(token)
        if claims is None:
            return failure(FailureCode.TOKEN_INVALID)

        now = self._clock()
        if now >= claims.expires_at:
            return failure(FailureCode.TOKEN_EXPIRED)

        try:
            await RevokedSessionTokenRepository.add(
                self._db,
                jti=claims.token_id,
                expires_at=claims.expires_at,
                revoked_at=now,
            )
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Session revocation failed")
            return failure(FailureCode.SERVICE_UNAVAILABLE)

        return claims
