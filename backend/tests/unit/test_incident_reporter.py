"""Tests for security incident reporters."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from guest_access.services.collaborators import SecurityIncident
from guest_access.services.incident_reporter import (
    LoggingIncidentReporter,
    WebhookIncidentReporter,
)
from tests.conftest import TEST_NOW

_WEBHOOK_URL = "https://alerts.example/hooks/guest"
_PATCH_POST = "guest_access.services.incident_reporter.httpx.AsyncClient.post"


def _incident() -> SecurityIncident:
    return SecurityIncident(
        kind="otp_brute_force",
        source_ip="203.0.113.7",
        identifier="a***@x.com",
        occurred_at=TEST_NOW,
        details={"scope": "ip"},
    )


class TestLoggingReporter:
    async def test_logs_incident(self):
        with patch("guest_access.services.incident_reporter.logger") as log:
            await LoggingIncidentReporter().report(_incident())

        log.warning.assert_called_once()
        assert log.warning.call_args.kwargs["kind"] == "otp_brute_force"
        assert log.warning.call_args.kwargs["scope"] == "ip"


class TestWebhookReporter:
    async def test_posts_incident_json(self):
        response = MagicMock()
        with patch(_PATCH_POST, new_callable=AsyncMock, return_value=response) as post:
            await WebhookIncidentReporter(_WEBHOOK_URL, token="t0ken").report(
                _incident()
            )

        post.assert_awaited_once()
        assert post.call_args.args[0] == _WEBHOOK_URL
        body = post.call_args.kwargs["json"]
        assert body["kind"] == "otp_brute_force"
        assert body["occurred_at"] == TEST_NOW.isoformat()
        assert post.call_args.kwargs["headers"] == {"Authorization": "Bearer t0ken"}

    async def test_webhook_failure_is_swallowed_and_logged(self):
        with (
            patch(
                _PATCH_POST,
                new_callable=AsyncMock,
                side_effect=httpx.ConnectError("unreachable"),
            ),
            patch("guest_access.services.incident_reporter.logger") as log,
        ):
            await WebhookIncidentReporter(_WEBHOOK_URL).report(_incident())

        log.error.assert_called_once()
