# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: categorical breakdowns of a filtered incident population.

Single-valued dimensions (severity, status, team, service, assignee) partition
the population: each incident lands in exactly one bucket, with missing values
under the ``unassigned`` sentinel. Categories are many-to-many and fan out: an
incident with N categories increments N buckets, so category counts may sum to
more than the population. Do not "fix" that into an exclusive partition.
"""
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ims.core.errors import ValidationError
from ims.metrics import REPORTS_GENERATED
from ims.models.domain import EntityRef, GroupBy, Incident, ReportFilter
from ims.repositories.incident_repository import IncidentRepository
from ims.schemas import BreakdownItem

UNASSIGNED_KEY = "unassigned"

UNASSIGNED_LABELS = {
    GroupBy.ASSIGNEE: "Unassigned",
    GroupBy.TEAM: "No team",
    GroupBy.SERVICE: "No service",
}


def parse_group_by(value) -> GroupBy:
    try:
        return GroupBy(value)
    except ValueError:
        allowed = [g.value for g in GroupBy]
        raise ValidationError(f"Unknown groupBy '{value}'. Allowed: {allowed}") from None


def _single_key(incident: Incident, group_by: GroupBy) -> Tuple[Optional[str], Optional[str]]:
    if group_by is GroupBy.SEVERITY:
        return incident.severity.value, incident.severity.value
    if group_by is GroupBy.STATUS:
        return incident.status.value, incident.status.value
    ref: Optional[EntityRef] = {
        GroupBy.TEAM: incident.team,
        GroupBy.SERVICE: incident.primary_service,
        GroupBy.ASSIGNEE: incident.assignee,
    }[group_by]
    if ref is None:
        return None, None
    return ref.id, ref.name


def group_incidents(population: List[Incident], group_by: GroupBy) -> List[BreakdownItem]:
    counts: Dict[str, int] = {}
    labels: Dict[str, str] = {}

    if group_by is GroupBy.CATEGORY:
        # Fan-out: one increment per category the incident carries.
        for incident in population:
            for category in incident.categories:
                counts[category.id] = counts.get(category.id, 0) + 1
                labels[category.id] = category.name
    else:
        for incident in population:
            key, label = _single_key(incident, group_by)
            if key is None:
                key, label = UNASSIGNED_KEY, UNASSIGNED_LABELS.get(group_by, "Unassigned")
            counts[key] = counts.get(key, 0) + 1
            labels[key] = label

    items = [BreakdownItem(key=k, label=labels[k], count=c) for k, c in counts.items()]
    items.sort(key=lambda i: (-i.count, i.key))
    return items


class BreakdownEngine:
    def __init__(self, repo: IncidentRepository,
                 clock: Optional[Callable[[], datetime]] = None):
        self._repo = repo
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def get_breakdown(self, report_filter: ReportFilter, group_by) -> List[BreakdownItem]:
        dimension = parse_group_by(group_by)
        population = self._repo.find_incidents(report_filter.to_criteria(self._now()))
        REPORTS_GENERATED.labels(kind="breakdown").inc()
        return group_incidents(population, dimension)
