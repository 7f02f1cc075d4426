"""Tests for the abuse guard (per-IP and per-identifier moving windows)."""

import pytest

from guest_access.core.config import settings
from guest_access.core.outcomes import FailureCode
from guest_access.services.abuse_guard import AbuseGuard, build_limiter
from guest_access.services.collaborators import (
    INCIDENT_OTP_BRUTE_FORCE,
    INCIDENT_RATE_LIMIT_EXCEEDED,
)
from tests.conftest import TEST_NOW
from tests.unit.conftest import GUEST_EMAIL, OTHER_EMAIL

_IP = "203.0.113.7"
_OTHER_IP = "198.51.100.9"


@pytest.fixture
def tight_limits(monkeypatch):
    monkeypatch.setattr(settings, "abuse_otp_requests_per_identifier", "2/hour")
    monkeypatch.setattr(settings, "abuse_otp_requests_per_ip", "3/hour")
    monkeypatch.setattr(settings, "abuse_failed_verifications_per_identifier", "2/hour")
    monkeypatch.setattr(settings, "abuse_failed_verifications_per_ip", "3/hour")


@pytest.fixture
def guard(tight_limits, reporter, clock):  # noqa: ARG001
    return AbuseGuard(build_limiter("async+memory://"), reporter, clock=clock)


class TestCheckIssue:
    async def test_allows_within_limits(self, guard):
        assert await guard.check_issue(_IP, GUEST_EMAIL) is None
        assert await guard.check_issue(_IP, GUEST_EMAIL) is None

    async def test_per_identifier_limit_across_ips(self, guard, reporter):
        await guard.check_issue(_IP, GUEST_EMAIL)
        await guard.check_issue(_OTHER_IP, GUEST_EMAIL)

        result = await guard.check_issue("192.0.2.1", GUEST_EMAIL)

        assert result.code == FailureCode.RATE_LIMITED
        assert result.retry_after_seconds > 0
        [incident] = reporter.incidents
        assert incident.kind == INCIDENT_RATE_LIMIT_EXCEEDED
        assert incident.details == {"scope": "identifier"}

    async def test_per_ip_limit_across_identifiers(self, guard):
        for email in ("one@x.com", "two@x.com", "three@x.com"):
            assert await guard.check_issue(_IP, email) is None

        result = await guard.check_issue(_IP, "four@x.com")

        assert result.code == FailureCode.RATE_LIMITED

    async def test_identifier_is_normalized(self, guard):
        await guard.check_issue(_IP, GUEST_EMAIL)
        await guard.check_issue(_OTHER_IP, " A@X.COM ")

        result = await guard.check_issue("192.0.2.1", GUEST_EMAIL)

        assert result.code == FailureCode.RATE_LIMITED

    async def test_incident_masks_identifier(self, guard, reporter):
        for _ in range(3):
            await guard.check_issue(_IP, GUEST_EMAIL)

        assert reporter.incidents[0].identifier == "a***@x.com"
        assert reporter.incidents[0].source_ip == _IP


class TestVerificationFailures:
    async def test_check_verify_does_not_count(self, guard):
        for _ in range(5):
            assert await guard.check_verify(_IP, GUEST_EMAIL) is None

    async def test_blocks_after_recorded_failures(self, guard, reporter):
        await guard.record_failed_verification(_IP, GUEST_EMAIL)
        await guard.record_failed_verification(_OTHER_IP, GUEST_EMAIL)

        result = await guard.check_verify(_IP, GUEST_EMAIL)

        assert result.code == FailureCode.RATE_LIMITED
        assert reporter.incidents[0].kind == INCIDENT_OTP_BRUTE_FORCE

    async def test_other_identifier_unaffected(self, guard):
        await guard.record_failed_verification(_IP, GUEST_EMAIL)
        await guard.record_failed_verification(_OTHER_IP, GUEST_EMAIL)

        assert await guard.check_verify(_OTHER_IP, OTHER_EMAIL) is None

    async def test_per_ip_failures_across_identifiers(self, guard):
        for email in ("one@x.com", "two@x.com", "three@x.com"):
            await guard.record_failed_verification(_IP, email)

        result = await guard.check_verify(_IP, "four@x.com")

        assert result.code == FailureCode.RATE_LIMITED


class TestDisabled:
    async def test_disabled_guard_allows_everything(
        self, tight_limits, reporter  # noqa: ARG002
    ):
        guard = AbuseGuard(build_limiter("async+memory://"), reporter, enabled=False)

        for _ in range(10):
            assert await guard.check_issue(_IP, GUEST_EMAIL) is None
            await guard.record_failed_verification(_IP, GUEST_EMAIL)

        assert await guard.check_verify(_IP, GUEST_EMAIL) is None
        assert reporter.incidents == []


class TestExhaustedChallenge:
    async def test_reports_brute_force_incident(self, guard, reporter):
        await guard.report_exhausted_challenge(_IP, " A@X.com")

        [incident] = reporter.incidents
        assert incident.kind == INCIDENT_OTP_BRUTE_FORCE
        assert incident.identifier == "a***@x.com"
        assert incident.source_ip == _IP
        assert incident.occurred_at == TEST_NOW
        assert incident.details == {"scope": "challenge", "attempts": 5}

    async def test_reported_even_when_throttling_disabled(self, reporter):
        guard = AbuseGuard(build_limiter("async+memory://"), reporter, enabled=False)

        await guard.report_exhausted_challenge(_IP, GUEST_EMAIL)

        assert len(reporter.incidents) == 1
