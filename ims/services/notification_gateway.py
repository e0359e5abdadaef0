# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: notification gateway: outbound delivery per channel.
Each handler posts over HTTP and raises on transport or non-2xx errors;
deciding whether to notify and swallowing failures is the trigger's job.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from ims.core.config import settings
from ims.core.logging import get_logger

logger = get_logger(__name__)

PAGERDUTY_SEVERITY = {
    "SEV1": "critical",
    "SEV2": "error",
    "SEV3": "warning",
    "SEV4": "info",
}


def to_pagerduty_severity(severity: str) -> str:
    return PAGERDUTY_SEVERITY.get(str(severity).upper().strip(), "info")


@dataclass(frozen=True)
class NotificationMessage:
    incident_id: str
    title: str
    severity: str
    link: str

    @property
    def text(self) -> str:
        return f"[{self.severity}] {self.title} ({self.link})"


class NotificationGateway:
    """Deliver a message to a named destination channel over HTTP."""

    def __init__(self, discord_webhook_url: Optional[str] = None,
                 pagerduty_routing_key: Optional[str] = None,
                 pagerduty_events_url: Optional[str] = None,
                 relay_url: Optional[str] = None,
                 timeout: Optional[float] = None):
        self._discord_url = settings.DISCORD_WEBHOOK_URL if discord_webhook_url is None else discord_webhook_url
        self._pd_key = settings.PAGERDUTY_ROUTING_KEY if pagerduty_routing_key is None else pagerduty_routing_key
        self._pd_url = pagerduty_events_url or settings.PAGERDUTY_EVENTS_URL
        self._relay_url = settings.NOTIFICATION_SERVICE_URL if relay_url is None else relay_url
        self._timeout = timeout or settings.NOTIFICATION_TIMEOUT
        self._handlers: Dict[str, Callable[[NotificationMessage], bool]] = {
            "discord": self._send_discord,
            "pagerduty": self._send_pagerduty,
            "relay": self._send_relay,
        }

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    def send(self, message: NotificationMessage, destination: str) -> bool:
        """Deliver ``message`` to ``destination``. Returns False when the channel
        is not configured; raises on unknown channels and delivery errors."""
        handler = self._handlers.get(destination)
        if handler is None:
            raise ValueError(f"Unknown notification channel '{destination}'")
        return handler(message)

    def _post(self, url: str, payload: dict) -> httpx.Response:
        with httpx.Client(timeout=self._timeout) as client:
            resp = client.post(url, json=payload)
        resp.raise_for_status()
        return resp

    def _send_discord(self, message: NotificationMessage) -> bool:
        if not self._discord_url:
            logger.info("Discord channel skipped: DISCORD_WEBHOOK_URL not set")
            return False
        self._post(self._discord_url, {"content": message.text})
        return True

    def _send_pagerduty(self, message: NotificationMessage) -> bool:
        if not self._pd_key:
            logger.info("PagerDuty channel skipped: PAGERDUTY_ROUTING_KEY not set")
            return False
        self._post(self._pd_url, {
            "routing_key": self._pd_key,
            "event_action": "trigger",
            "payload": {
                "summary": f"[{message.severity}] {message.title}",
                "source": "IMS",
                "severity": to_pagerduty_severity(message.severity),
                "custom_details": {"incidentId": message.incident_id, "link": message.link},
            },
        })
        return True

    def _send_relay(self, message: NotificationMessage) -> bool:
        if not self._relay_url:
            logger.info("Relay channel skipped: NOTIFICATION_SERVICE_URL not set")
            return False
        self._post(f"{self._relay_url.rstrip('/')}/api/v1/notify", {
            "incident_id": message.incident_id,
            "channel": "slack",
            "recipient": "ops-team",
            "message": message.text,
            "severity": message.severity,
        })
        return True
