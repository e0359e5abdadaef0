# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for incidents, comments, relations and subscriptions."""
import uuid
from contextlib import nullcontext
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, func, insert, or_, select, text, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import Select

from ims.core.logging import get_logger
from ims.models.domain import Comment, EntityRef, Incident, IncidentCriteria, as_utc
from ims.repositories.tables import (
    categories,
    incident_categories,
    incident_comments,
    incident_tags,
    incidents,
    metadata,
    notification_subscriptions,
    services,
    tags,
    teams,
    users,
)

logger = get_logger(__name__)

_reporters = users.alias("reporter")
_assignees = users.alias("assignee")

DIRECTORY_TABLES = {
    "user": users,
    "team": teams,
    "service": services,
    "category": categories,
    "tag": tags,
}


def _user_label(name: Optional[str], email: Optional[str]) -> str:
    return (name or "").strip() or (email or "")


def _ref(ref_id: Optional[str], label: Optional[str]) -> Optional[EntityRef]:
    if ref_id is None:
        return None
    return EntityRef(id=ref_id, name=label or ref_id)


def _row_to_incident(row) -> Incident:
    m = row._mapping
    return Incident(
        id=m["id"],
        title=m["title"],
        description=m["description"] or "",
        status=m["status"],
        severity=m["severity"],
        created_at=as_utc(m["created_at"]),
        updated_at=as_utc(m["updated_at"]),
        triaged_at=as_utc(m["triaged_at"]),
        in_progress_at=as_utc(m["in_progress_at"]),
        resolved_at=as_utc(m["resolved_at"]),
        closed_at=as_utc(m["closed_at"]),
        reporter=EntityRef(
            id=m["reporter_id"],
            name=_user_label(m["reporter_name"], m["reporter_email"]) or m["reporter_id"],
        ),
        assignee=_ref(m["assignee_id"], _user_label(m["assignee_name"], m["assignee_email"])),
        team=_ref(m["team_id"], m["team_name"]),
        primary_service=_ref(m["primary_service_id"], m["service_name"] or m["service_key"]),
        audit_hash=m["audit_hash"],
        audit_hash_updated_at=as_utc(m["audit_hash_updated_at"]),
    )


def _incident_select() -> Select:
    return select(
        incidents,
        _reporters.c.name.label("reporter_name"),
        _reporters.c.email.label("reporter_email"),
        _assignees.c.name.label("assignee_name"),
        _assignees.c.email.label("assignee_email"),
        teams.c.name.label("team_name"),
        services.c.name.label("service_name"),
        services.c.key.label("service_key"),
    ).select_from(
        incidents
        .outerjoin(_reporters, _reporters.c.id == incidents.c.reporter_id)
        .outerjoin(_assignees, _assignees.c.id == incidents.c.assignee_id)
        .outerjoin(teams, teams.c.id == incidents.c.team_id)
        .outerjoin(services, services.c.id == incidents.c.primary_service_id)
    )


class IncidentRepository:
    def __init__(self, engine: Engine):
        self._engine = engine

    def transaction(self):
        """Scoped unit of work: commits on clean exit, rolls back on any exception."""
        return self._engine.begin()

    def _reader(self, conn: Optional[Connection]):
        return nullcontext(conn) if conn is not None else self._engine.connect()

    # ── Write ──────────────────────────────────────────────────────────

    def insert_incident(self, conn: Connection, values: Dict[str, Any]) -> None:
        conn.execute(insert(incidents).values(**values))

    def update_incident(self, conn: Connection, incident_id: str, values: Dict[str, Any],
                        expected_status: Optional[str] = None) -> int:
        """Apply ``values``; with ``expected_status`` the write only lands if the
        row still holds that status (compare-and-set). Returns affected rows."""
        stmt = update(incidents).where(incidents.c.id == incident_id)
        if expected_status is not None:
            stmt = stmt.where(incidents.c.status == expected_status)
        return conn.execute(stmt.values(**values)).rowcount

    def replace_categories(self, conn: Connection, incident_id: str,
                           category_ids: Iterable[str], assigned_at: datetime) -> None:
        conn.execute(delete(incident_categories).where(incident_categories.c.incident_id == incident_id))
        rows = [{"incident_id": incident_id, "category_id": cid, "assigned_at": assigned_at}
                for cid in dict.fromkeys(category_ids)]
        if rows:
            conn.execute(insert(incident_categories), rows)

    def replace_tags(self, conn: Connection, incident_id: str, tag_ids: Iterable[str]) -> None:
        conn.execute(delete(incident_tags).where(incident_tags.c.incident_id == incident_id))
        rows = [{"incident_id": incident_id, "tag_id": tid} for tid in dict.fromkeys(tag_ids)]
        if rows:
            conn.execute(insert(incident_tags), rows)

    def insert_comment(self, conn: Connection, incident_id: str, author_id: str,
                       body: str, created_at: datetime) -> str:
        comment_id = str(uuid.uuid4())
        conn.execute(insert(incident_comments).values(
            id=comment_id, incident_id=incident_id, author_id=author_id,
            body=body, created_at=created_at,
        ))
        return comment_id

    def ensure_subscription(self, conn: Connection, incident_id: str, user_id: str,
                            created_at: datetime) -> bool:
        """Create the (incident, user) subscription unless it exists. True if created."""
        exists = conn.execute(
            select(notification_subscriptions.c.id).where(
                notification_subscriptions.c.incident_id == incident_id,
                notification_subscriptions.c.user_id == user_id,
            )
        ).first()
        if exists:
            return False
        conn.execute(insert(notification_subscriptions).values(
            id=str(uuid.uuid4()), incident_id=incident_id,
            user_id=user_id, created_at=created_at,
        ))
        return True

    def remove_subscription(self, conn: Connection, incident_id: str, user_id: str) -> int:
        return conn.execute(
            delete(notification_subscriptions).where(
                notification_subscriptions.c.incident_id == incident_id,
                notification_subscriptions.c.user_id == user_id,
            )
        ).rowcount

    def delete_incident_relations(self, conn: Connection, incident_id: str) -> None:
        """Bulk-delete comments, subscriptions and join rows of an incident."""
        for table in (incident_comments, notification_subscriptions,
                      incident_categories, incident_tags):
            conn.execute(delete(table).where(table.c.incident_id == incident_id))

    def delete_incident(self, conn: Connection, incident_id: str) -> int:
        return conn.execute(delete(incidents).where(incidents.c.id == incident_id)).rowcount

    # ── Read ───────────────────────────────────────────────────────────

    def get_incident(self, incident_id: str,
                     conn: Optional[Connection] = None) -> Optional[Incident]:
        with self._reader(conn) as c:
            row = c.execute(_incident_select().where(incidents.c.id == incident_id)).first()
            if row is None:
                return None
            return self._attach_relations(c, [_row_to_incident(row)])[0]

    def exists(self, incident_id: str, conn: Optional[Connection] = None) -> bool:
        with self._reader(conn) as c:
            return c.execute(
                select(incidents.c.id).where(incidents.c.id == incident_id)
            ).first() is not None

    def find_incidents(self, criteria: IncidentCriteria, newest_first: bool = True,
                       conn: Optional[Connection] = None) -> List[Incident]:
        stmt = _incident_select()
        if criteria.status is not None:
            stmt = stmt.where(incidents.c.status == criteria.status.value)
        if criteria.severity is not None:
            stmt = stmt.where(incidents.c.severity == criteria.severity.value)
        if criteria.assignee_id:
            stmt = stmt.where(incidents.c.assignee_id == criteria.assignee_id)
        if criteria.team_id:
            stmt = stmt.where(incidents.c.team_id == criteria.team_id)
        if criteria.service_id:
            stmt = stmt.where(incidents.c.primary_service_id == criteria.service_id)
        if criteria.service_key:
            # Unknown key matches nothing.
            stmt = stmt.where(services.c.key == criteria.service_key)
        if criteria.search:
            pattern = f"%{criteria.search}%"
            stmt = stmt.where(or_(
                incidents.c.title.ilike(pattern),
                incidents.c.description.ilike(pattern),
            ))
        if criteria.created_from is not None:
            stmt = stmt.where(incidents.c.created_at >= criteria.created_from)
        if criteria.created_before is not None:
            stmt = stmt.where(incidents.c.created_at < criteria.created_before)
        order = incidents.c.created_at.desc() if newest_first else incidents.c.created_at.asc()
        stmt = stmt.order_by(order, incidents.c.id)
        if criteria.limit:
            stmt = stmt.limit(criteria.limit)

        with self._reader(conn) as c:
            rows = c.execute(stmt).fetchall()
            return self._attach_relations(c, [_row_to_incident(r) for r in rows])

    def list_comments(self, incident_id: str,
                      conn: Optional[Connection] = None) -> List[Comment]:
        stmt = (
            select(incident_comments, users.c.name.label("author_name"),
                   users.c.email.label("author_email"))
            .select_from(incident_comments.outerjoin(users, users.c.id == incident_comments.c.author_id))
            .where(incident_comments.c.incident_id == incident_id)
            .order_by(incident_comments.c.created_at, incident_comments.c.id)
        )
        with self._reader(conn) as c:
            rows = c.execute(stmt).fetchall()
        return [
            Comment(
                id=r.id, incident_id=r.incident_id, author_id=r.author_id,
                author_name=_user_label(r.author_name, r.author_email) or None,
                body=r.body, created_at=as_utc(r.created_at),
            )
            for r in rows
        ]

    def list_subscribers(self, incident_id: str,
                         conn: Optional[Connection] = None) -> List[str]:
        with self._reader(conn) as c:
            rows = c.execute(
                select(notification_subscriptions.c.user_id)
                .where(notification_subscriptions.c.incident_id == incident_id)
                .order_by(notification_subscriptions.c.created_at)
            ).fetchall()
        return [r[0] for r in rows]

    def missing_ids(self, kind: str, ids: Iterable[str],
                    conn: Optional[Connection] = None) -> Set[str]:
        """Return the subset of ``ids`` with no row in the ``kind`` directory table."""
        wanted = set(ids)
        if not wanted:
            return set()
        table = DIRECTORY_TABLES[kind]
        with self._reader(conn) as c:
            found = {r[0] for r in c.execute(select(table.c.id).where(table.c.id.in_(wanted)))}
        return wanted - found

    def service_id_for_key(self, key: str,
                           conn: Optional[Connection] = None) -> Optional[str]:
        with self._reader(conn) as c:
            return c.execute(select(services.c.id).where(services.c.key == key)).scalar()

    def display_name(self, kind: str, ref_id: str,
                     conn: Optional[Connection] = None) -> Optional[str]:
        table = DIRECTORY_TABLES[kind]
        with self._reader(conn) as c:
            row = c.execute(select(table).where(table.c.id == ref_id)).first()
        if row is None:
            return None
        m = row._mapping
        if kind == "user":
            return _user_label(m["name"], m["email"])
        if kind == "tag":
            return m["label"]
        return m["name"]

    def count_by_status(self) -> Dict[str, int]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(incidents.c.status, func.count()).group_by(incidents.c.status)
            ).fetchall()
        return {r[0]: r[1] for r in rows}

    # ── Ops ────────────────────────────────────────────────────────────

    def create_schema(self) -> None:
        metadata.create_all(self._engine)

    def verify_connection(self):
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def dispose(self):
        self._engine.dispose()

    # ── Private ────────────────────────────────────────────────────────

    def _attach_relations(self, conn: Connection, found: List[Incident]) -> List[Incident]:
        if not found:
            return found
        by_id = {i.id: i for i in found}
        ids = list(by_id)

        cat_rows = conn.execute(
            select(incident_categories.c.incident_id, categories.c.id, categories.c.name)
            .select_from(incident_categories.join(categories, categories.c.id == incident_categories.c.category_id))
            .where(incident_categories.c.incident_id.in_(ids))
            .order_by(categories.c.name, categories.c.id)
        ).fetchall()
        for iid, cid, name in cat_rows:
            by_id[iid].categories.append(EntityRef(id=cid, name=name))

        tag_rows = conn.execute(
            select(incident_tags.c.incident_id, tags.c.id, tags.c.label)
            .select_from(incident_tags.join(tags, tags.c.id == incident_tags.c.tag_id))
            .where(incident_tags.c.incident_id.in_(ids))
            .order_by(tags.c.label, tags.c.id)
        ).fetchall()
        for iid, tid, label in tag_rows:
            by_id[iid].tags.append(EntityRef(id=tid, name=label))
        return found
