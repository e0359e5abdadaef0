# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Incident lifecycle service: create, field updates, comments, subscriptions
and deletion against the real repository SQL.
Run:  pytest test_incident_service.py -v
"""
import uuid
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import func, select

from conftest import ALICE, API, BILLING, BOB, CAROL, CUSTOMER, NETWORK, PLATFORM
from ims.core.errors import ForbiddenError, NotFoundError, ValidationError
from ims.models.domain import IncidentCriteria, IncidentStatus, Severity, TimelineEventType
from ims.repositories.tables import incident_comments, notification_subscriptions
from ims.schemas import IncidentCreate, IncidentFieldsUpdate
from ims.services.incident_service import IncidentService
from ims.services.notification_gateway import NotificationGateway
from ims.services.notification_trigger import NotificationTrigger
from ims.services.timeline import TimelineRecorder


def _count(repo, table, incident_id):
    with repo.transaction() as conn:
        return conn.execute(
            select(func.count()).select_from(table).where(table.c.incident_id == incident_id)
        ).scalar()


class TestCreateIncident:
    def test_starts_new_with_default_severity(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="Disk full"), reporter_id=ALICE)
        assert incident.status == IncidentStatus.NEW
        assert incident.severity == Severity.SEV3
        assert incident.reporter.name == "Alice Martin"

        events = timeline_repo.list_for_incident(incident.id)
        assert len(events) == 1
        assert events[0].type == TimelineEventType.STATUS_CHANGE
        assert events[0].from_status is None
        assert events[0].to_status == IncidentStatus.NEW

    def test_status_in_payload_ignored(self, service):
        payload = IncidentCreate.model_validate({"title": "Sneaky", "status": "CLOSED"})
        assert service.create_incident(payload, reporter_id=ALICE).status == IncidentStatus.NEW

    def test_service_set_event(self, service, timeline_repo):
        incident = service.create_incident(
            IncidentCreate(title="Gateway 502", primary_service_id=API), reporter_id=ALICE,
        )
        events = timeline_repo.list_for_incident(incident.id)
        assert [e.to_status for e in events if e.type == TimelineEventType.STATUS_CHANGE] == [
            IncidentStatus.NEW,
        ]
        assert events[-1].type == TimelineEventType.FIELD_UPDATE
        assert events[-1].message == "Service set: API Gateway"

    def test_relations_and_subscriptions(self, service, repo):
        incident = service.create_incident(
            IncidentCreate(title="Latency", team_id=PLATFORM, assignee_id=BOB,
                           category_ids=[NETWORK], tag_ids=[CUSTOMER]),
            reporter_id=ALICE,
        )
        assert incident.team.name == "Platform"
        assert incident.assignee.name == "Bob Dupont"
        assert [c.name for c in incident.categories] == ["Network"]
        assert [t.name for t in incident.tags] == ["customer-facing"]
        assert set(repo.list_subscribers(incident.id)) == {ALICE, BOB}

    def test_unknown_reference_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_incident(IncidentCreate(title="X", team_id="t-nope"), reporter_id=ALICE)

    @pytest.mark.parametrize("severity,pages", [
        ("SEV1", True), ("SEV2", True), ("SEV3", False), ("SEV4", False),
    ])
    def test_paging_severities(self, repo, timeline_repo, auditor, clock, severity, pages):
        gateway = MagicMock(spec=NotificationGateway)
        gateway.send.return_value = True
        svc = IncidentService(
            repo, TimelineRecorder(timeline_repo),
            NotificationTrigger(gateway, channels=["discord"]), auditor, clock=clock,
        )
        svc.create_incident(IncidentCreate(title="Outage", severity=severity), reporter_id=ALICE)
        assert gateway.send.called is pages

    def test_notification_failure_does_not_fail_create(self, repo, timeline_repo, auditor, clock):
        gateway = MagicMock(spec=NotificationGateway)
        gateway.send.side_effect = RuntimeError("webhook down")
        svc = IncidentService(
            repo, TimelineRecorder(timeline_repo),
            NotificationTrigger(gateway, channels=["discord", "pagerduty"]), auditor, clock=clock,
        )
        incident = svc.create_incident(IncidentCreate(title="Outage", severity="SEV1"),
                                       reporter_id=ALICE)
        assert repo.get_incident(incident.id) is not None
        assert gateway.send.call_count == 2

    def test_audit_hash_stored(self, service):
        incident = service.create_incident(IncidentCreate(title="Hashed"), reporter_id=ALICE)
        assert incident.audit_hash and len(incident.audit_hash) == 64


class TestUpdateFields:
    def test_severity_change(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        updated = service.update_fields(incident.id, IncidentFieldsUpdate(severity="SEV1"),
                                        actor_id=BOB)
        assert updated.severity == Severity.SEV1
        last = timeline_repo.list_for_incident(incident.id)[-1]
        assert last.type == TimelineEventType.FIELD_UPDATE
        assert "SEV3" in last.message and "SEV1" in last.message

    def test_assignee_change_subscribes(self, service, repo, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        service.update_fields(incident.id, IncidentFieldsUpdate(assignee_id=CAROL), actor_id=ALICE)
        assert CAROL in repo.list_subscribers(incident.id)
        last = timeline_repo.list_for_incident(incident.id)[-1]
        assert last.type == TimelineEventType.FIELD_UPDATE
        assert "carol@example.com" in last.message

    def test_each_changed_field_appends_event(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        before = len(timeline_repo.list_for_incident(incident.id))
        service.update_fields(
            incident.id,
            IncidentFieldsUpdate(severity="SEV2", assignee_id=BOB, primary_service_id=BILLING),
            actor_id=ALICE,
        )
        assert len(timeline_repo.list_for_incident(incident.id)) == before + 3

    def test_clear_assignee(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A", assignee_id=BOB),
                                           reporter_id=ALICE)
        updated = service.update_fields(
            incident.id, IncidentFieldsUpdate.model_validate({"assigneeId": None}), actor_id=ALICE,
        )
        assert updated.assignee is None
        assert timeline_repo.list_for_incident(incident.id)[-1].message == "Assignee removed"

    def test_noop_appends_nothing(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A", severity="SEV2"),
                                           reporter_id=ALICE)
        before = len(timeline_repo.list_for_incident(incident.id))
        service.update_fields(incident.id, IncidentFieldsUpdate(severity="SEV2"), actor_id=ALICE)
        assert len(timeline_repo.list_for_incident(incident.id)) == before

    def test_other_fields_single_generic_event(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        updated = service.update_fields(
            incident.id,
            IncidentFieldsUpdate(title="B", description="More detail", category_ids=[NETWORK]),
            actor_id=ALICE,
        )
        assert updated.title == "B"
        assert [c.id for c in updated.categories] == [NETWORK]
        last = timeline_repo.list_for_incident(incident.id)[-1]
        assert last.message == "Fields updated"

    def test_unknown_incident(self, service):
        with pytest.raises(NotFoundError):
            service.update_fields(str(uuid.uuid4()), IncidentFieldsUpdate(severity="SEV1"),
                                  actor_id=ALICE)


class TestComments:
    def test_add_comment(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        comment = service.add_comment(incident.id, "Investigating", actor_id=BOB)
        assert comment.body == "Investigating"
        assert comment.author_name == "Bob Dupont"
        assert service.list_comments(incident.id) == [comment]
        last = timeline_repo.list_for_incident(incident.id)[-1]
        assert last.type == TimelineEventType.COMMENT
        assert last.message == "Investigating"

    def test_comment_on_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            service.add_comment(str(uuid.uuid4()), "hello", actor_id=BOB)

    def test_list_on_missing_incident(self, service):
        with pytest.raises(NotFoundError):
            service.list_comments(str(uuid.uuid4()))
        with pytest.raises(NotFoundError):
            service.get_timeline(str(uuid.uuid4()))


class TestSubscriptions:
    def test_subscribe_idempotent(self, service, repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        assert service.subscribe(incident.id, BOB) == {"subscribed": True}
        assert service.subscribe(incident.id, BOB) == {"subscribed": True}
        assert repo.list_subscribers(incident.id).count(BOB) == 1

    def test_unsubscribe(self, service, repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        assert service.unsubscribe(incident.id, ALICE) == {"subscribed": False}
        assert repo.list_subscribers(incident.id) == []


class TestDelete:
    def test_non_reporter_forbidden(self, service, repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        with pytest.raises(ForbiddenError):
            service.delete_incident(incident.id, actor_id=BOB)
        assert repo.exists(incident.id)

    def test_reporter_cascades(self, service, repo, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A", assignee_id=BOB),
                                           reporter_id=ALICE)
        service.add_comment(incident.id, "note", actor_id=BOB)

        assert service.delete_incident(incident.id, actor_id=ALICE) == {"deleted": True}
        assert not repo.exists(incident.id)
        assert len(timeline_repo.list_for_incident(incident.id)) == 0
        assert _count(repo, incident_comments, incident.id) == 0
        assert _count(repo, notification_subscriptions, incident.id) == 0

    def test_missing(self, service):
        with pytest.raises(NotFoundError):
            service.delete_incident(str(uuid.uuid4()), actor_id=ALICE)


class TestQueries:
    def test_get_detail(self, service):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        service.add_comment(incident.id, "first", actor_id=BOB)
        detail = service.get_incident(incident.id)
        assert detail.id == incident.id
        assert [c.body for c in detail.comments] == ["first"]
        assert [e.type for e in detail.timeline] == [
            TimelineEventType.STATUS_CHANGE, TimelineEventType.COMMENT,
        ]

    def test_list_search(self, service, clock):
        service.create_incident(IncidentCreate(title="Database failover"), reporter_id=ALICE)
        clock.advance(minutes=1)
        service.create_incident(IncidentCreate(title="CDN purge", description="database cache"),
                                reporter_id=ALICE)
        clock.advance(minutes=1)
        service.create_incident(IncidentCreate(title="Login errors"), reporter_id=ALICE)

        found = service.list_incidents(IncidentCriteria(search="DATABASE"))
        assert [i.title for i in found] == ["CDN purge", "Database failover"]


class TestActorValidation:
    GHOST = "u-ghost"

    def test_status_change_by_unknown_actor(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        with pytest.raises(ValidationError):
            service.change_status(incident.id, IncidentStatus.TRIAGED, actor_id=self.GHOST)
        assert service.get_incident(incident.id).status == IncidentStatus.NEW
        assert len(timeline_repo.list_for_incident(incident.id)) == 1

    def test_field_update_by_unknown_actor(self, service):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        with pytest.raises(ValidationError):
            service.update_fields(incident.id, IncidentFieldsUpdate(severity="SEV1"),
                                  actor_id=self.GHOST)
        assert service.get_incident(incident.id).severity == Severity.SEV3

    def test_comment_by_unknown_actor(self, service, repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        with pytest.raises(ValidationError):
            service.add_comment(incident.id, "hi", actor_id=self.GHOST)
        assert _count(repo, incident_comments, incident.id) == 0

    def test_subscribe_unknown_user(self, service, repo):
        incident = service.create_incident(IncidentCreate(title="A"), reporter_id=ALICE)
        with pytest.raises(ValidationError):
            service.subscribe(incident.id, self.GHOST)
        assert repo.list_subscribers(incident.id) == [ALICE]


class TestPrimaryServiceKey:
    def test_create_by_key(self, service, timeline_repo):
        incident = service.create_incident(
            IncidentCreate(title="Invoices stuck", primary_service_key="billing"), reporter_id=ALICE,
        )
        assert incident.primary_service.id == BILLING
        assert timeline_repo.list_for_incident(incident.id)[-1].message == "Service set: Billing"

    def test_create_unknown_key(self, service):
        with pytest.raises(ValidationError):
            service.create_incident(
                IncidentCreate(title="X", primary_service_key="no-such-service"), reporter_id=ALICE,
            )

    def test_id_wins_over_key(self, service):
        incident = service.create_incident(
            IncidentCreate(title="X", primary_service_id=API, primary_service_key="billing"),
            reporter_id=ALICE,
        )
        assert incident.primary_service.id == API

    def test_update_by_key(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A", primary_service_id=API),
                                           reporter_id=ALICE)
        updated = service.update_fields(
            incident.id, IncidentFieldsUpdate(primary_service_key="billing"), actor_id=ALICE,
        )
        assert updated.primary_service.id == BILLING
        last = timeline_repo.list_for_incident(incident.id)[-1]
        assert last.message == "Service updated: API Gateway → Billing"

    def test_update_unknown_key(self, service):
        incident = service.create_incident(IncidentCreate(title="A", primary_service_id=API),
                                           reporter_id=ALICE)
        with pytest.raises(ValidationError):
            service.update_fields(incident.id, IncidentFieldsUpdate(primary_service_key="nope"),
                                  actor_id=ALICE)
        assert service.get_incident(incident.id).primary_service.id == API

    def test_blank_key_clears(self, service, timeline_repo):
        incident = service.create_incident(IncidentCreate(title="A", primary_service_id=API),
                                           reporter_id=ALICE)
        updated = service.update_fields(
            incident.id, IncidentFieldsUpdate.model_validate({"primaryServiceKey": "  "}),
            actor_id=ALICE,
        )
        assert updated.primary_service is None
        assert timeline_repo.list_for_incident(incident.id)[-1].message == "Service removed"

    def test_list_by_key(self, service):
        billing = service.create_incident(IncidentCreate(title="A", primary_service_id=BILLING),
                                          reporter_id=ALICE)
        service.create_incident(IncidentCreate(title="B", primary_service_id=API), reporter_id=ALICE)
        found = service.list_incidents(IncidentCriteria(service_key="billing"))
        assert [i.id for i in found] == [billing.id]
        assert service.list_incidents(IncidentCriteria(service_key="unknown")) == []


class TestFieldsUpdatePayload:
    def test_title_is_stripped(self):
        assert IncidentFieldsUpdate(title="  Renamed  ").title == "Renamed"

    def test_blank_title_rejected(self):
        with pytest.raises(SchemaValidationError):
            IncidentFieldsUpdate(title="   ")

    def test_title_may_be_omitted(self):
        assert IncidentFieldsUpdate(severity="SEV1").title is None
