# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: incident audit integrity hash.

A canonical payload of the incident and its relations (categories, tags,
timeline, comments) is serialised deterministically and signed with
HMAC-SHA256 using a server-side secret. The hash is refreshed inside every
mutating transaction and re-checked before an incident document is exported.

``updated_at`` and the hash columns are left out of the payload: writing the
hash itself touches them.
"""
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Connection

from ims.core.config import settings
from ims.core.errors import AuditIntegrityError, NotFoundError
from ims.core.logging import get_logger
from ims.models.domain import Comment, Incident, TimelineEvent
from ims.repositories.incident_repository import IncidentRepository
from ims.repositories.timeline_repository import TimelineRepository

logger = get_logger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def stable_dumps(value: Any) -> str:
    """Deterministic JSON: sorted keys, no whitespace; cycles raise ValueError."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hmac_sha256_hex(secret: str, payload: str) -> str:
    if not secret:
        raise ValueError("secret is required")
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def build_audit_payload(incident: Incident, timeline: List[TimelineEvent],
                        comments: List[Comment]) -> Dict[str, Any]:
    return {
        "incident": {
            "id": incident.id,
            "title": incident.title,
            "description": incident.description,
            "status": incident.status.value,
            "severity": incident.severity.value,
            "reporterId": incident.reporter.id,
            "assigneeId": incident.assignee.id if incident.assignee else None,
            "teamId": incident.team.id if incident.team else None,
            "primaryServiceId": incident.primary_service.id if incident.primary_service else None,
            "createdAt": _iso(incident.created_at),
            "triagedAt": _iso(incident.triaged_at),
            "inProgressAt": _iso(incident.in_progress_at),
            "resolvedAt": _iso(incident.resolved_at),
            "closedAt": _iso(incident.closed_at),
        },
        "categories": sorted(c.id for c in incident.categories),
        "tags": sorted(t.id for t in incident.tags),
        "timeline": sorted(
            (
                {
                    "id": e.id,
                    "type": e.type.value,
                    "fromStatus": e.from_status.value if e.from_status else None,
                    "toStatus": e.to_status.value if e.to_status else None,
                    "message": e.message,
                    "authorId": e.author_id,
                    "createdAt": _iso(e.created_at),
                }
                for e in timeline
            ),
            key=lambda e: (e["createdAt"] or "", e["id"]),
        ),
        "comments": sorted(
            (
                {"id": c.id, "body": c.body, "authorId": c.author_id, "createdAt": _iso(c.created_at)}
                for c in comments
            ),
            key=lambda c: (c["createdAt"] or "", c["id"]),
        ),
    }


class IncidentAuditor:
    def __init__(self, repo: IncidentRepository, timeline_repo: TimelineRepository,
                 secret: Optional[str] = None):
        self._repo = repo
        self._timeline = timeline_repo
        self._secret = settings.AUDIT_HMAC_SECRET if secret is None else secret

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    def compute(self, incident_id: str, conn: Optional[Connection] = None) -> str:
        incident = self._repo.get_incident(incident_id, conn=conn)
        if incident is None:
            raise NotFoundError("Incident not found")
        payload = build_audit_payload(
            incident,
            self._timeline.list_for_incident(incident_id, conn=conn),
            self._repo.list_comments(incident_id, conn=conn),
        )
        return hmac_sha256_hex(self._secret, stable_dumps(payload))

    def refresh(self, conn: Connection, incident_id: str) -> Optional[str]:
        """Recompute and store the hash within the caller's transaction."""
        if not self.enabled:
            return None
        digest = self.compute(incident_id, conn=conn)
        self._repo.update_incident(conn, incident_id, {
            "audit_hash": digest,
            "audit_hash_updated_at": datetime.now(timezone.utc),
        })
        return digest

    def verify(self, incident_id: str) -> Optional[str]:
        """Check the stored hash against the current state, storing one if absent.
        Raises AuditIntegrityError on mismatch; returns the valid hash."""
        if not self.enabled:
            return None
        with self._repo.transaction() as conn:
            incident = self._repo.get_incident(incident_id, conn=conn)
            if incident is None:
                raise NotFoundError("Incident not found")
            if not incident.audit_hash:
                return self.refresh(conn, incident_id)
            computed = self.compute(incident_id, conn=conn)
        if not hmac.compare_digest(computed, incident.audit_hash):
            logger.error("Audit hash mismatch incident=%s", incident_id)
            raise AuditIntegrityError(
                "Integrity check failed (audit hash mismatch). Document export blocked."
            )
        return computed
