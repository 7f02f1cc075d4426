"""Abuse guard for the OTP endpoints.

Moving-window counters (``limits``) keyed independently by source IP and by
identifier, so neither rotating emails from one address nor spreading
guesses for one email across many addresses gets around the limits.

The guard runs before the issuer/verifier; a rejected call never reaches the
challenge store. Counter storage is configured by URI
(``ABUSE_GUARD_STORAGE_URI``): ``async+memory://`` for a single instance,
``async+redis://...`` when several instances share counters.
"""

import logging
import math
import time

from limits import RateLimitItem, parse
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

from guest_access.core.clock import Clock, utc_now
from guest_access.core.config import settings
from guest_access.core.outcomes import FailureCode, GuestAuthFailure, failure
from guest_access.core.scope import mask_email, normalize_email
from guest_access.services.collaborators import (
    INCIDENT_OTP_BRUTE_FORCE,
    INCIDENT_RATE_LIMIT_EXCEEDED,
    IncidentReporter,
    SecurityIncident,
)

logger = logging.getLogger(__name__)

_NAMESPACE = "guest_abuse"


def build_limiter(storage_uri: str | None = None) -> MovingWindowRateLimiter:
    """Moving-window limiter over the configured async storage."""
    storage = storage_from_string(storage_uri or settings.abuse_guard_storage_uri)
    return MovingWindowRateLimiter(storage)


class AbuseGuard:
    """Per-IP and per-identifier throttling of OTP requests and failures.

    Args:
        limiter: Async moving-window limiter.
        reporter: Security incident sink.
        enabled: When False every check passes (local development).
        clock: Time source for incident timestamps.
    """

    def __init__(
        self,
        limiter: MovingWindowRateLimiter,
        reporter: IncidentReporter,
        *,
        enabled: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        self._limiter = limiter
        self._reporter = reporter
        self._enabled = enabled
        self._clock = clock
        self._issue_per_identifier = parse(settings.abuse_otp_requests_per_identifier)
        self._issue_per_ip = parse(settings.abuse_otp_requests_per_ip)
        self._failures_per_identifier = parse(
            settings.abuse_failed_verifications_per_identifier
        )
        self._failures_per_ip = parse(settings.abuse_failed_verifications_per_ip)

    async def _retry_after(self, item: RateLimitItem, *keys: str) -> int:
        stats = await self._limiter.get_window_stats(item, _NAMESPACE, *keys)
        return max(1, math.ceil(stats.reset_time - time.time()))

    async def _reject(
        self,
        kind: str,
        source_ip: str,
        identifier: str,
        retry_after: int,
        **details: object,
    ) -> GuestAuthFailure:
        logger.warning(
            "Abuse guard rejected %s for %s from %s",
            kind,
            mask_email(identifier),
            source_ip,
        )
        await self._reporter.report(
            SecurityIncident(
                kind=kind,
                source_ip=source_ip,
                identifier=mask_email(identifier),
                occurred_at=self._clock(),
                details=dict(details),
            )
        )
        return failure(FailureCode.RATE_LIMITED, retry_after_seconds=retry_after)

    async def check_issue(
        self, source_ip: str, identifier: str
    ) -> GuestAuthFailure | None:
        """Count one OTP request; reject when either window is full.

        Returns:
            None when allowed, RATE_LIMITED otherwise.
        """
        if not self._enabled:
            return None
        email = normalize_email(identifier)

        if not await self._limiter.hit(
            self._issue_per_ip, _NAMESPACE, "issue_ip", source_ip
        ):
            retry = await self._retry_after(self._issue_per_ip, "issue_ip", source_ip)
            return await self._reject(
                INCIDENT_RATE_LIMIT_EXCEEDED, source_ip, email, retry, scope="ip"
            )
        if not await self._limiter.hit(
            self._issue_per_identifier, _NAMESPACE, "issue_id", email
        ):
            retry = await self._retry_after(
                self._issue_per_identifier, "issue_id", email
            )
            return await self._reject(
                INCIDENT_RATE_LIMIT_EXCEEDED,
                source_ip,
                email,
                retry,
                scope="identifier",
            )
        return None

    async def check_verify(
        self, source_ip: str, identifier: str
    ) -> GuestAuthFailure | None:
        """Fail fast when failed-verification windows are already full.

        Does not count anything; failures are counted by
        ``record_failed_verification``.
        """
        if not self._enabled:
            return None
        email = normalize_email(identifier)

        if not await self._limiter.test(
            self._failures_per_ip, _NAMESPACE, "fail_ip", source_ip
        ):
            retry = await self._retry_after(self._failures_per_ip, "fail_ip", source_ip)
            return await self._reject(
                INCIDENT_OTP_BRUTE_FORCE, source_ip, email, retry, scope="ip"
            )
        if not await self._limiter.test(
            self._failures_per_identifier, _NAMESPACE, "fail_id", email
        ):
            retry = await self._retry_after(
                self._failures_per_identifier, "fail_id", email
            )
            return await self._reject(
                INCIDENT_OTP_BRUTE_FORCE, source_ip, email, retry, scope="identifier"
            )
        return None

    async def record_failed_verification(
        self, source_ip: str, identifier: str
    ) -> None:
        """Count one failed verification against both windows."""
        if not self._enabled:
            return
        email = normalize_email(identifier)
        await self._limiter.hit(
            self._failures_per_ip, _NAMESPACE, "fail_ip", source_ip
        )
        await self._limiter.hit(
            self._failures_per_identifier, _NAMESPACE, "fail_id", email
        )

    async def report_exhausted_challenge(
        self, source_ip: str, identifier: str
    ) -> None:
        """Report a challenge whose attempts were all spent on wrong codes.

        Reported whether or not throttling is enabled; an exhausted code is a
        brute-force signal even when the windows have room left.
        """
        email = normalize_email(identifier)
        logger.warning(
            "OTP attempts exhausted for %s from %s", mask_email(email), source_ip
        )
        await self._reporter.report(
            SecurityIncident(
                kind=INCIDENT_OTP_BRUTE_FORCE,
                source_ip=source_ip,
                identifier=mask_email(email),
                occurred_at=self._clock(),
                details={
                    "scope": "challenge",
                    "attempts": settings.otp_max_attempts,
                },
            )
        )
