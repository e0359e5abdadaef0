# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Shared fixtures. The environment is pinned before any ``ims`` import so the
module-level settings and engine point at an in-memory SQLite database.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUDIT_HMAC_SECRET"] = "test-audit-secret"
os.environ["NOTIFICATION_CHANNELS"] = "discord,pagerduty"
os.environ["DISCORD_WEBHOOK_URL"] = ""
os.environ["PAGERDUTY_ROUTING_KEY"] = ""
os.environ["NOTIFICATION_SERVICE_URL"] = ""
os.environ["PUBLIC_BASE_URL"] = "http://ims.test"

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import delete, insert

from ims.core.database import engine
from ims.repositories.incident_repository import IncidentRepository
from ims.repositories.tables import (
    categories,
    incident_categories,
    incident_comments,
    incident_tags,
    incident_timeline,
    incidents,
    metadata,
    notification_subscriptions,
    services,
    tags,
    teams,
    users,
)
from ims.repositories.timeline_repository import TimelineRepository
from ims.services.audit import IncidentAuditor
from ims.services.incident_service import IncidentService
from ims.services.notification_trigger import NotificationTrigger
from ims.services.timeline import TimelineRecorder

metadata.create_all(engine)

ALICE = "u-alice"
BOB = "u-bob"
CAROL = "u-carol"
PLATFORM = "t-platform"
PAYMENTS = "t-payments"
API = "s-api"
BILLING = "s-billing"
NETWORK = "c-network"
DATABASE = "c-database"
CUSTOMER = "g-customer"

BASE = datetime(2025, 2, 1, tzinfo=timezone.utc)

_DIRECTORY = [
    (users, [
        {"id": ALICE, "name": "Alice Martin", "email": "alice@example.com"},
        {"id": BOB, "name": "Bob Dupont", "email": "bob@example.com"},
        {"id": CAROL, "name": "", "email": "carol@example.com"},
    ]),
    (teams, [
        {"id": PLATFORM, "name": "Platform"},
        {"id": PAYMENTS, "name": "Payments"},
    ]),
    (services, [
        {"id": API, "key": "api-gateway", "name": "API Gateway"},
        {"id": BILLING, "key": "billing", "name": "Billing"},
    ]),
    (categories, [
        {"id": NETWORK, "name": "Network"},
        {"id": DATABASE, "name": "Database"},
    ]),
    (tags, [
        {"id": CUSTOMER, "label": "customer-facing"},
    ]),
]

_INCIDENT_TABLES = (
    incident_timeline, incident_comments, notification_subscriptions,
    incident_categories, incident_tags, incidents,
)


@pytest.fixture(autouse=True)
def clean_db():
    """Wipe incident data and re-seed the directory before each test."""
    with engine.begin() as conn:
        for table in _INCIDENT_TABLES:
            conn.execute(delete(table))
        for table, _ in reversed(_DIRECTORY):
            conn.execute(delete(table))
        for table, rows in _DIRECTORY:
            conn.execute(insert(table), rows)
    yield


@pytest.fixture
def repo():
    return IncidentRepository(engine)


@pytest.fixture
def timeline_repo():
    return TimelineRepository(engine)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, start: datetime = BASE):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def seed_incident(repo):
    """Insert an incident row directly, bypassing the lifecycle rules."""

    def _seed(created_at: datetime, severity: str = "SEV3", status: str = "NEW",
              resolved_at=None, closed_at=None, team_id=None, service_id=None,
              assignee_id=None, reporter_id=ALICE, category_ids=(), tag_ids=(),
              title="Seeded incident") -> str:
        incident_id = str(uuid.uuid4())
        with repo.transaction() as conn:
            repo.insert_incident(conn, {
                "id": incident_id,
                "title": title,
                "description": "",
                "status": status,
                "severity": severity,
                "reporter_id": reporter_id,
                "assignee_id": assignee_id,
                "team_id": team_id,
                "primary_service_id": service_id,
                "created_at": created_at,
                "updated_at": created_at,
                "resolved_at": resolved_at,
                "closed_at": closed_at,
            })
            if category_ids:
                repo.replace_categories(conn, incident_id, category_ids, created_at)
            if tag_ids:
                repo.replace_tags(conn, incident_id, tag_ids)
        return incident_id

    return _seed


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationTrigger)


@pytest.fixture
def auditor(repo, timeline_repo):
    return IncidentAuditor(repo, timeline_repo, secret="test-audit-secret")


@pytest.fixture
def service(repo, timeline_repo, notifier, auditor, clock):
    return IncidentService(
        repo=repo,
        timeline=TimelineRecorder(timeline_repo),
        notifier=notifier,
        auditor=auditor,
        clock=clock,
    )
