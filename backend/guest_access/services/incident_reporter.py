"""Security incident reporters.

Incidents are always written to the structured security log. When an
incident webhook is configured they are also POSTed there; webhook failures
are logged and never affect the request that triggered the incident.
"""

from dataclasses import asdict

import httpx
import structlog

from guest_access.services.collaborators import SecurityIncident

logger = structlog.get_logger("guest_access.security")

_WEBHOOK_TIMEOUT = 5.0


def _incident_payload(incident: SecurityIncident) -> dict:
    payload = asdict(incident)
    payload["occurred_at"] = incident.occurred_at.isoformat()
    return payload


class LoggingIncidentReporter:
    """Writes incidents to the security log."""

    async def report(self, incident: SecurityIncident) -> None:
        logger.warning(
            "security_incident",
            kind=incident.kind,
            source_ip=incident.source_ip,
            identifier=incident.identifier,
            occurred_at=incident.occurred_at.isoformat(),
            **incident.details,
        )


class WebhookIncidentReporter(LoggingIncidentReporter):
    """Logs incidents and forwards them to an alerting webhook.

    Args:
        url: Webhook endpoint.
        token: Optional bearer token for the webhook.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        timeout: float = _WEBHOOK_TIMEOUT,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout = timeout

    async def report(self, incident: SecurityIncident) -> None:
        await super().report(incident)

        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(
                    self._url,
                    json=_incident_payload(incident),
                    headers=headers,
                    timeout=self._timeout,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "security_incident_webhook_failed",
                kind=incident.kind,
                error=str(exc),
            )
