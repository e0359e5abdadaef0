# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: timeline recorder.
Builds the tagged audit events and appends them inside the caller's transaction.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.engine import Connection

from ims.models.domain import IncidentStatus, TimelineEvent, TimelineEventType
from ims.repositories.timeline_repository import TimelineRepository


class TimelineRecorder:
    """Append-only audit trail keyed by incident."""

    def __init__(self, repo: TimelineRepository):
        self._repo = repo

    def _append(self, conn: Connection, incident_id: str, event_type: TimelineEventType,
                author_id: Optional[str], at: datetime, message: Optional[str] = None,
                from_status: Optional[IncidentStatus] = None,
                to_status: Optional[IncidentStatus] = None) -> str:
        event_id = str(uuid.uuid4())
        self._repo.append(conn, {
            "id": event_id,
            "incident_id": incident_id,
            "type": event_type.value,
            "from_status": from_status.value if from_status else None,
            "to_status": to_status.value if to_status else None,
            "message": message,
            "author_id": author_id,
            "created_at": at,
        })
        return event_id

    def status_change(self, conn: Connection, incident_id: str,
                      from_status: Optional[IncidentStatus], to_status: IncidentStatus,
                      author_id: Optional[str], at: datetime,
                      message: Optional[str] = None) -> str:
        return self._append(conn, incident_id, TimelineEventType.STATUS_CHANGE, author_id, at,
                            message=message, from_status=from_status, to_status=to_status)

    def comment(self, conn: Connection, incident_id: str, body: str,
                author_id: str, at: datetime) -> str:
        return self._append(conn, incident_id, TimelineEventType.COMMENT, author_id, at,
                            message=body)

    def field_update(self, conn: Connection, incident_id: str, message: str,
                     author_id: Optional[str], at: datetime) -> str:
        return self._append(conn, incident_id, TimelineEventType.FIELD_UPDATE, author_id, at,
                            message=message)

    def events(self, incident_id: str, conn: Optional[Connection] = None) -> List[TimelineEvent]:
        return self._repo.list_for_incident(incident_id, conn=conn)

    def purge(self, conn: Connection, incident_id: str) -> int:
        return self._repo.purge_incident(conn, incident_id)
