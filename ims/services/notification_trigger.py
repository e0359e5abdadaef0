# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: notification trigger.
Decides whether an incident pages, builds the message and fans it out to the
configured channels. Failures are logged but never raised.
"""
from typing import Dict, Iterable, Optional

from ims.core.config import settings
from ims.core.logging import get_logger
from ims.metrics import NOTIFICATIONS_SENT
from ims.models.domain import PAGING_SEVERITIES, Incident, Severity
from ims.services.notification_gateway import NotificationGateway, NotificationMessage

logger = get_logger(__name__)


def should_notify(severity: Severity) -> bool:
    return Severity(severity) in PAGING_SEVERITIES


class NotificationTrigger:
    def __init__(self, gateway: NotificationGateway,
                 channels: Optional[Iterable[str]] = None,
                 base_url: Optional[str] = None):
        self._gateway = gateway
        self._channels = list(settings.NOTIFICATION_CHANNELS if channels is None else channels)
        self._base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")

    should_notify = staticmethod(should_notify)

    def build_message(self, incident: Incident) -> NotificationMessage:
        return NotificationMessage(
            incident_id=incident.id,
            title=incident.title,
            severity=incident.severity.value,
            link=f"{self._base_url}/incidents/{incident.id}",
        )

    def fire(self, incident: Incident) -> Dict[str, str]:
        """Send to every channel; returns channel -> sent | skipped | failed."""
        message = self.build_message(incident)
        outcomes: Dict[str, str] = {}
        for channel in self._channels:
            try:
                delivered = self._gateway.send(message, channel)
                outcomes[channel] = "sent" if delivered else "skipped"
            except Exception as exc:
                outcomes[channel] = "failed"
                logger.warning("Notification failed: incident=%s channel=%s error=%s",
                               incident.id, channel, exc,
                               extra={"incident_id": incident.id, "channel": channel})
            NOTIFICATIONS_SENT.labels(channel=channel, outcome=outcomes[channel]).inc()
        logger.info("Notifications dispatched incident=%s severity=%s outcomes=%s",
                    incident.id, incident.severity.value, outcomes)
        return outcomes

    def on_created(self, incident: Incident) -> Optional[Dict[str, str]]:
        if not should_notify(incident.severity):
            return None
        return self.fire(incident)
