# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: incident timeline (audit trail) data access.
Append-only: no update and no single-event delete.
"""

from contextlib import nullcontext
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection, Engine

from ims.models.domain import TimelineEvent, as_utc
from ims.repositories.tables import incident_timeline, users


def _row_to_event(row) -> TimelineEvent:
    m = row._mapping
    author_name = None
    if m["author_id"] is not None:
        author_name = (m["author_name"] or "").strip() or m["author_email"]
    return TimelineEvent(
        id=m["id"],
        incident_id=m["incident_id"],
        type=m["type"],
        from_status=m["from_status"],
        to_status=m["to_status"],
        message=m["message"],
        author_id=m["author_id"],
        author_name=author_name,
        created_at=as_utc(m["created_at"]),
    )


class TimelineRepository:
    def __init__(self, engine: Engine):
        self._engine = engine

    # ── Write ──────────────────────────────────────────────────────────

    def append(self, conn: Connection, event: Dict[str, Any]) -> None:
        conn.execute(insert(incident_timeline).values(**event))

    def purge_incident(self, conn: Connection, incident_id: str) -> int:
        """Bulk removal of an incident's whole trail; only used by incident deletion."""
        result = conn.execute(
            delete(incident_timeline).where(incident_timeline.c.incident_id == incident_id)
        )
        return result.rowcount

    # ── Read ───────────────────────────────────────────────────────────

    def list_for_incident(self, incident_id: str,
                          conn: Optional[Connection] = None) -> List[TimelineEvent]:
        stmt = (
            select(
                incident_timeline,
                users.c.name.label("author_name"),
                users.c.email.label("author_email"),
            )
            .select_from(incident_timeline.outerjoin(users, users.c.id == incident_timeline.c.author_id))
            .where(incident_timeline.c.incident_id == incident_id)
            .order_by(incident_timeline.c.created_at, incident_timeline.c.seq)
        )
        with (nullcontext(conn) if conn is not None else self._engine.connect()) as c:
            rows = c.execute(stmt).fetchall()
        return [_row_to_event(r) for r in rows]
