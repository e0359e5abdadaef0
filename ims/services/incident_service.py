# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Business logic for the incident lifecycle.

Every mutation runs as one transaction: the incident write, its timeline
events and the audit hash refresh commit together or not at all.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ims.core.errors import InvalidTransitionError, NotFoundError, ForbiddenError, ValidationError
from ims.core.logging import get_logger
from ims.metrics import (
    COMMENTS_ADDED,
    INCIDENT_MTTR,
    INCIDENTS_CREATED,
    INCIDENTS_TOTAL,
    STATUS_TRANSITIONS,
)
from ims.models.domain import (
    DEFAULT_SEVERITY,
    Comment,
    Incident,
    IncidentCriteria,
    IncidentDetail,
    IncidentStatus,
    Severity,
    TimelineEvent,
)
from ims.repositories.incident_repository import IncidentRepository
from ims.schemas import IncidentCreate, IncidentFieldsUpdate
from ims.services.audit import IncidentAuditor
from ims.services.notification_trigger import NotificationTrigger
from ims.services.state_machine import INITIAL_STATUS, milestone_field, validate_transition
from ims.services.timeline import TimelineRecorder

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentService:
    def __init__(self, repo: IncidentRepository, timeline: TimelineRecorder,
                 notifier: NotificationTrigger, auditor: IncidentAuditor,
                 clock: Optional[Callable[[], datetime]] = None):
        self._repo = repo
        self._timeline = timeline
        self._notifier = notifier
        self._auditor = auditor
        self._now = clock or _utcnow

    def seed_gauges(self):
        counts = self._repo.count_by_status()
        for status in IncidentStatus:
            INCIDENTS_TOTAL.labels(status=status.value).set(counts.get(status.value, 0))
        logger.info("Prometheus gauges loaded from DB")

    # ── Create ─────────────────────────────────────────────────────────

    def create_incident(self, data: IncidentCreate, reporter_id: str) -> Incident:
        severity = data.severity or DEFAULT_SEVERITY
        self._check_refs(
            user=[reporter_id] + ([data.assignee_id] if data.assignee_id else []),
            team=[data.team_id] if data.team_id else [],
            category=data.category_ids or [],
            tag=data.tag_ids or [],
        )
        _, service_id = self._resolve_service(data)

        incident_id = str(uuid.uuid4())
        now = self._now()
        with self._repo.transaction() as conn:
            self._repo.insert_incident(conn, {
                "id": incident_id,
                "title": data.title,
                "description": data.description,
                "status": INITIAL_STATUS.value,
                "severity": severity.value,
                "reporter_id": reporter_id,
                "assignee_id": data.assignee_id,
                "team_id": data.team_id,
                "primary_service_id": service_id,
                "created_at": now,
                "updated_at": now,
            })
            if data.category_ids:
                self._repo.replace_categories(conn, incident_id, data.category_ids, now)
            if data.tag_ids:
                self._repo.replace_tags(conn, incident_id, data.tag_ids)

            self._timeline.status_change(conn, incident_id, None, INITIAL_STATUS,
                                         reporter_id, now, message="Incident created")
            self._repo.ensure_subscription(conn, incident_id, reporter_id, now)
            if data.assignee_id:
                self._repo.ensure_subscription(conn, incident_id, data.assignee_id, now)
            if service_id:
                name = self._repo.display_name("service", service_id, conn=conn)
                self._timeline.field_update(conn, incident_id, f"Service set: {name}",
                                            reporter_id, now)
            self._auditor.refresh(conn, incident_id)
            incident = self._repo.get_incident(incident_id, conn=conn)

        INCIDENTS_TOTAL.labels(status=INITIAL_STATUS.value).inc()
        INCIDENTS_CREATED.labels(severity=severity.value).inc()
        logger.info("Incident created id=%s severity=%s reporter=%s assignee=%s",
                    incident_id, severity.value, reporter_id, data.assignee_id)

        # Paging happens after commit; a delivery failure never undoes the create.
        self._notifier.on_created(incident)
        return incident

    # ── Status ─────────────────────────────────────────────────────────

    def change_status(self, incident_id: str, new_status: IncidentStatus,
                      actor_id: str, message: Optional[str] = None) -> Incident:
        new_status = IncidentStatus(new_status)
        self._check_refs(user=[actor_id])
        now = self._now()
        with self._repo.transaction() as conn:
            current = self._repo.get_incident(incident_id, conn=conn)
            if current is None:
                raise NotFoundError("Incident not found")
            old_status = current.status
            validate_transition(old_status, new_status)

            values: Dict[str, Any] = {"status": new_status.value, "updated_at": now}
            field = milestone_field(new_status)
            stamped = field is not None and getattr(current, field) is None
            if stamped:
                values[field] = now

            if not self._repo.update_incident(conn, incident_id, values,
                                              expected_status=old_status.value):
                # Another writer moved the incident after our read.
                raise InvalidTransitionError(
                    old_status, new_status,
                    f"Incident status changed concurrently; '{old_status.value}' is stale",
                )
            self._timeline.status_change(
                conn, incident_id, old_status, new_status, actor_id, now,
                message=message or f"Status changed to {new_status.value}",
            )
            self._auditor.refresh(conn, incident_id)
            updated = self._repo.get_incident(incident_id, conn=conn)

        INCIDENTS_TOTAL.labels(status=old_status.value).dec()
        INCIDENTS_TOTAL.labels(status=new_status.value).inc()
        STATUS_TRANSITIONS.labels(from_status=old_status.value, to_status=new_status.value).inc()
        if stamped and field == "resolved_at":
            mttr = updated.resolve_seconds
            INCIDENT_MTTR.observe(mttr)
            logger.info("MTTR recorded incident=%s seconds=%.1f", incident_id, mttr)
        logger.info("Status changed incident=%s from=%s to=%s actor=%s",
                    incident_id, old_status.value, new_status.value, actor_id,
                    extra={"incident_id": incident_id, "actor_id": actor_id})
        return updated

    # ── Fields ─────────────────────────────────────────────────────────

    def update_fields(self, incident_id: str, changes: IncidentFieldsUpdate,
                      actor_id: str) -> Incident:
        provided = changes.model_fields_set
        assignee_id = (changes.assignee_id or None) if "assignee_id" in provided else None
        team_id = (changes.team_id or None) if "team_id" in provided else None
        self._check_refs(
            user=[actor_id] + ([assignee_id] if assignee_id else []),
            team=[team_id] if team_id else [],
            category=changes.category_ids or [],
            tag=changes.tag_ids or [],
        )
        service_given, service_id = self._resolve_service(changes)

        now = self._now()
        with self._repo.transaction() as conn:
            current = self._repo.get_incident(incident_id, conn=conn)
            if current is None:
                raise NotFoundError("Incident not found")

            values: Dict[str, Any] = {}
            other_changed = False

            if "title" in provided and changes.title is not None and changes.title != current.title:
                values["title"] = changes.title
                other_changed = True
            if ("description" in provided and changes.description is not None
                    and changes.description != current.description):
                values["description"] = changes.description
                other_changed = True
            if "team_id" in provided and team_id != (current.team.id if current.team else None):
                values["team_id"] = team_id
                other_changed = True

            severity_changed = (
                "severity" in provided and changes.severity is not None
                and changes.severity != current.severity
            )
            if severity_changed:
                values["severity"] = changes.severity.value

            old_assignee = current.assignee.id if current.assignee else None
            assignee_changed = "assignee_id" in provided and assignee_id != old_assignee
            if assignee_changed:
                values["assignee_id"] = assignee_id

            old_service = current.primary_service.id if current.primary_service else None
            service_changed = service_given and service_id != old_service
            if service_changed:
                values["primary_service_id"] = service_id

            categories_changed = (
                changes.category_ids is not None
                and sorted(set(changes.category_ids)) != sorted(c.id for c in current.categories)
            )
            tags_changed = (
                changes.tag_ids is not None
                and sorted(set(changes.tag_ids)) != sorted(t.id for t in current.tags)
            )

            if not (values or categories_changed or tags_changed):
                return current

            if values:
                values["updated_at"] = now
                self._repo.update_incident(conn, incident_id, values)
            if categories_changed:
                self._repo.replace_categories(conn, incident_id, changes.category_ids, now)
            if tags_changed:
                self._repo.replace_tags(conn, incident_id, changes.tag_ids)

            events = 0
            if service_changed:
                if service_id:
                    name = self._repo.display_name("service", service_id, conn=conn)
                    msg = f"Service updated: {current.primary_service.name if current.primary_service else 'none'} → {name}"
                else:
                    msg = "Service removed"
                self._timeline.field_update(conn, incident_id, msg, actor_id, now)
                events += 1
            if assignee_changed:
                if assignee_id:
                    label = self._repo.display_name("user", assignee_id, conn=conn)
                    before = current.assignee.name if current.assignee else "unassigned"
                    msg = f"Assignee updated: {before} → {label}"
                    self._repo.ensure_subscription(conn, incident_id, assignee_id, now)
                else:
                    msg = "Assignee removed"
                self._timeline.field_update(conn, incident_id, msg, actor_id, now)
                events += 1
            if severity_changed:
                self._timeline.field_update(
                    conn, incident_id,
                    f"Severity updated: {current.severity.value} → {changes.severity.value}",
                    actor_id, now,
                )
                events += 1
            if events == 0 and (other_changed or categories_changed or tags_changed):
                self._timeline.field_update(conn, incident_id, "Fields updated", actor_id, now)

            self._auditor.refresh(conn, incident_id)
            updated = self._repo.get_incident(incident_id, conn=conn)

        logger.info("Fields updated incident=%s fields=%s actor=%s",
                    incident_id, sorted(values) + (["categories"] if categories_changed else [])
                    + (["tags"] if tags_changed else []), actor_id)
        return updated

    # ── Comments & subscriptions ───────────────────────────────────────

    def add_comment(self, incident_id: str, body: str, actor_id: str) -> Comment:
        self._check_refs(user=[actor_id])
        now = self._now()
        with self._repo.transaction() as conn:
            if not self._repo.exists(incident_id, conn=conn):
                raise NotFoundError("Incident not found")
            comment_id = self._repo.insert_comment(conn, incident_id, actor_id, body, now)
            self._timeline.comment(conn, incident_id, body, actor_id, now)
            self._auditor.refresh(conn, incident_id)
            comment = next(c for c in self._repo.list_comments(incident_id, conn=conn)
                           if c.id == comment_id)
        COMMENTS_ADDED.inc()
        logger.info("Comment %s added to incident %s by %s", comment_id, incident_id, actor_id)
        return comment

    def subscribe(self, incident_id: str, user_id: str) -> Dict[str, bool]:
        self._check_refs(user=[user_id])
        with self._repo.transaction() as conn:
            if not self._repo.exists(incident_id, conn=conn):
                raise NotFoundError("Incident not found")
            self._repo.ensure_subscription(conn, incident_id, user_id, self._now())
        return {"subscribed": True}

    def unsubscribe(self, incident_id: str, user_id: str) -> Dict[str, bool]:
        with self._repo.transaction() as conn:
            self._repo.remove_subscription(conn, incident_id, user_id)
        return {"subscribed": False}

    # ── Delete ─────────────────────────────────────────────────────────

    def delete_incident(self, incident_id: str, actor_id: str) -> Dict[str, bool]:
        with self._repo.transaction() as conn:
            current = self._repo.get_incident(incident_id, conn=conn)
            if current is None:
                raise NotFoundError("Incident not found")
            if current.reporter.id != actor_id:
                raise ForbiddenError("Only the reporter can delete this incident")
            self._repo.delete_incident_relations(conn, incident_id)
            self._timeline.purge(conn, incident_id)
            self._repo.delete_incident(conn, incident_id)

        INCIDENTS_TOTAL.labels(status=current.status.value).dec()
        logger.info("Incident deleted id=%s actor=%s", incident_id, actor_id)
        return {"deleted": True}

    # ── Read ───────────────────────────────────────────────────────────

    def get_incident(self, incident_id: str) -> IncidentDetail:
        with self._repo.transaction() as conn:
            incident = self._repo.get_incident(incident_id, conn=conn)
            if incident is None:
                raise NotFoundError("Incident not found")
            return IncidentDetail(
                **incident.model_dump(),
                comments=self._repo.list_comments(incident_id, conn=conn),
                timeline=self._timeline.events(incident_id, conn=conn),
            )

    def list_incidents(self, criteria: IncidentCriteria) -> List[Incident]:
        return self._repo.find_incidents(criteria)

    def list_comments(self, incident_id: str) -> List[Comment]:
        self._require(incident_id)
        return self._repo.list_comments(incident_id)

    def get_timeline(self, incident_id: str) -> List[TimelineEvent]:
        self._require(incident_id)
        return self._timeline.events(incident_id)

    def subscribers(self, incident_id: str) -> List[str]:
        self._require(incident_id)
        return self._repo.list_subscribers(incident_id)

    # ── Private ────────────────────────────────────────────────────────

    def _require(self, incident_id: str) -> None:
        if not self._repo.exists(incident_id):
            raise NotFoundError("Incident not found")

    def _resolve_service(self, data) -> Tuple[bool, Optional[str]]:
        """Primary service from ``primaryServiceId`` or ``primaryServiceKey``.

        Returns ``(given, service_id)``. A field sent blank or null clears the
        service; the id wins when both are sent. Unknown ids and keys raise
        ValidationError.
        """
        provided = data.model_fields_set
        if "primary_service_id" in provided and not data.primary_service_id:
            return True, None
        if "primary_service_key" in provided and not data.primary_service_key:
            return True, None
        if data.primary_service_id:
            self._check_refs(service=[data.primary_service_id])
            return True, data.primary_service_id
        if data.primary_service_key:
            service_id = self._repo.service_id_for_key(data.primary_service_key)
            if service_id is None:
                raise ValidationError(f"Unknown service key: {data.primary_service_key!r}")
            return True, service_id
        return False, None

    def _check_refs(self, **ids_by_kind: List[str]) -> None:
        for kind, ids in ids_by_kind.items():
            missing = self._repo.missing_ids(kind, ids)
            if missing:
                raise ValidationError(f"Unknown {kind} id(s): {sorted(missing)}")
