# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: tabular and document exports.

``export_table`` is the single source for both outputs: CSV serialises its
rows verbatim and the filter-scoped document lists them under a KPI summary.
The incident-scoped document adds the full timeline, the comments and the
audit integrity section, and is refused when the stored audit hash no longer
matches the incident.
"""
import csv
import io
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ims.core.config import settings
from ims.core.errors import NotFoundError
from ims.core.logging import get_logger
from ims.metrics import REPORTS_GENERATED
from ims.models.domain import Incident, ReportFilter
from ims.repositories.incident_repository import IncidentRepository
from ims.services.audit import IncidentAuditor
from ims.services.document_renderer import Document, DocumentRenderer, TextDocumentRenderer
from ims.services.metrics_aggregator import MetricsAggregator, compute_kpis
from ims.services.timeline import TimelineRecorder

logger = get_logger(__name__)

EXPORT_COLUMNS = (
    "id",
    "createdAt",
    "title",
    "severity",
    "status",
    "team",
    "service",
    "assignee",
    "reporter",
    "mttrSeconds",
    "slaTargetSeconds",
    "slaMet",
    "resolvedAt",
    "closedAt",
    "categories",
    "tags",
)

LIST_SEPARATOR = ";"


@dataclass
class ExportedDocument:
    content: bytes
    content_type: str
    filename: str


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "-"


def clamp_limit(limit: Optional[int]) -> int:
    if not limit or limit <= 0:
        return settings.EXPORT_DEFAULT_LIMIT
    return min(limit, settings.EXPORT_MAX_LIMIT)


class ReportExporter:
    def __init__(self, repo: IncidentRepository, timeline: TimelineRecorder,
                 aggregator: MetricsAggregator, auditor: IncidentAuditor,
                 renderer: Optional[DocumentRenderer] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._repo = repo
        self._timeline = timeline
        self._aggregator = aggregator
        self._auditor = auditor
        self._renderer = renderer or TextDocumentRenderer()
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def row(self, incident: Incident) -> Dict[str, Any]:
        sla = self._aggregator.sla
        return {
            "id": incident.id,
            "createdAt": incident.created_at,
            "title": incident.title,
            "severity": incident.severity.value,
            "status": incident.status.value,
            "team": incident.team.name if incident.team else None,
            "service": incident.primary_service.name if incident.primary_service else None,
            "assignee": incident.assignee.name if incident.assignee else None,
            "reporter": incident.reporter.name,
            "mttrSeconds": incident.resolve_seconds,
            "slaTargetSeconds": sla.target_seconds(incident.severity),
            "slaMet": sla.is_met(incident),
            "resolvedAt": incident.resolved_at,
            "closedAt": incident.closed_at,
            "categories": LIST_SEPARATOR.join(c.name for c in incident.categories),
            "tags": LIST_SEPARATOR.join(t.name for t in incident.tags),
        }

    def export_table(self, report_filter: ReportFilter,
                     limit: Optional[int] = None) -> List[Dict[str, Any]]:
        criteria = report_filter.to_criteria(self._now(), limit=clamp_limit(limit))
        return [self.row(i) for i in self._repo.find_incidents(criteria)]

    def export_csv(self, report_filter: ReportFilter, limit: Optional[int] = None) -> str:
        rows = self.export_table(report_filter, limit)
        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow([_cell(row[col]) for col in EXPORT_COLUMNS])
        REPORTS_GENERATED.labels(kind="csv").inc()
        logger.info("CSV export rows=%d", len(rows), extra={"report": "csv"})
        return output.getvalue()

    def export_document(self, report_filter: Optional[ReportFilter] = None,
                        incident_id: Optional[str] = None) -> ExportedDocument:
        if incident_id:
            document = self._incident_document(incident_id)
            filename = f"incident-{incident_id}{self._renderer.file_extension}"
        else:
            document = self._report_document(report_filter or ReportFilter())
            filename = f"incidents-report{self._renderer.file_extension}"
        REPORTS_GENERATED.labels(kind="document").inc()
        return ExportedDocument(
            content=self._renderer.render(document),
            content_type=self._renderer.content_type,
            filename=filename,
        )

    # ── Private ────────────────────────────────────────────────────────

    def _report_document(self, report_filter: ReportFilter) -> Document:
        now = self._now()
        population = self._repo.find_incidents(report_filter.to_criteria(now))
        kpis = compute_kpis(population, self._aggregator.sla)
        listed = population[: settings.DOCUMENT_MAX_INCIDENTS]

        start, end = report_filter.window(now)
        doc = Document(
            title="Incident Report",
            subtitle=[
                f"Generated at: {now.isoformat()}",
                f"Range: {_iso(start)} .. {_iso(end)}",
            ],
        )
        mttr = kpis.mttr_seconds
        compliance = "-" if kpis.sla_compliance_pct is None else f"{kpis.sla_compliance_pct}%"
        doc.add("Summary", [
            f"Open: {kpis.open_count}",
            f"Resolved: {kpis.resolved_count}",
            f"Closed: {kpis.closed_count}",
            f"MTTR avg/median/p90 (s): {_cell(mttr.avg) or '-'} / "
            f"{_cell(mttr.median) or '-'} / {_cell(mttr.p90) or '-'}",
            f"SLA compliance: {compliance}",
        ])
        doc.add(f"Incidents ({len(listed)} of {len(population)})", [
            " | ".join([
                i.created_at.isoformat(),
                i.severity.value,
                i.status.value,
                i.primary_service.name if i.primary_service else "-",
                i.title,
            ])
            for i in listed
        ])
        return doc

    def _incident_document(self, incident_id: str) -> Document:
        # Raises AuditIntegrityError on mismatch before anything is rendered.
        self._auditor.verify(incident_id)

        incident = self._repo.get_incident(incident_id)
        if incident is None:
            raise NotFoundError("Incident not found")
        timeline = self._timeline.events(incident_id)
        comments = self._repo.list_comments(incident_id)

        doc = Document(
            title="Incident Audit Report",
            subtitle=[f"Generated at: {self._now().isoformat()}"],
        )
        row = self.row(incident)
        doc.add(incident.title, [
            f"ID: {incident.id}",
            f"Status: {incident.status.value}   Severity: {incident.severity.value}",
            f"Service: {row['service'] or '-'}",
            f"Team: {row['team'] or '-'}",
            f"Assignee: {row['assignee'] or '-'}",
            f"Reporter: {row['reporter']}",
            f"Created: {_iso(incident.created_at)}",
            f"Resolved: {_iso(incident.resolved_at)}",
            f"Closed: {_iso(incident.closed_at)}",
            f"SLA target (s): {row['slaTargetSeconds']}   SLA met: {_cell(row['slaMet']) or '-'}",
            f"Categories: {', '.join(c.name for c in incident.categories) or '-'}",
            f"Tags: {', '.join(t.name for t in incident.tags) or '-'}",
        ])
        doc.add("Description", [incident.description or "-"])

        lines = []
        for e in timeline:
            line = f"{e.created_at.isoformat()} | {e.type.value}"
            if e.from_status or e.to_status:
                before = e.from_status.value if e.from_status else "-"
                after = e.to_status.value if e.to_status else "-"
                line += f" | {before} -> {after}"
            line += f" | by {e.author_name or e.author_id or 'system'}"
            if e.message:
                line += f" | {e.message[:160]}"
            lines.append(line)
        doc.add("Timeline", lines)

        doc.add("Comments", [
            f"{c.created_at.isoformat()} | {c.author_name or c.author_id}: {c.body}"
            for c in comments
        ])

        if self._auditor.enabled:
            integrity = (f"Audit hash: {incident.audit_hash or '-'} "
                         f"(updated: {_iso(incident.audit_hash_updated_at)})")
        else:
            integrity = "AUDIT_HMAC_SECRET not configured (integrity verification disabled)."
        doc.add("Integrity", [integrity])
        return doc
