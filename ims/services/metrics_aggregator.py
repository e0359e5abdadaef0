# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: KPI aggregation over a filtered incident population.

MTTR statistics and SLA compliance are computed in-process rather than with
database-specific aggregates (PERCENTILE_CONT), so the engine is portable
across stores and testable with plain incident lists.
"""
import math
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ims.core.config import settings
from ims.metrics import REPORTS_GENERATED
from ims.models.domain import (
    OPEN_EXCLUDED_STATUSES,
    RESOLVED_STATUSES,
    Incident,
    IncidentStatus,
    ReportFilter,
    Severity,
)
from ims.repositories.incident_repository import IncidentRepository
from ims.schemas import Kpis, MttrStats


def percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """Continuous percentile: rank = p*(n-1), interpolated linearly between the
    floor and ceil order statistics. ``sorted_values`` must be ascending."""
    if not sorted_values:
        return None
    if not 0.0 <= p <= 1.0:
        raise ValueError("p must be within [0, 1]")
    rank = p * (len(sorted_values) - 1)
    lo = math.floor(rank)
    hi = math.ceil(rank)
    if lo == hi:
        return float(sorted_values[lo])
    lower, upper = sorted_values[lo], sorted_values[hi]
    return lower + (upper - lower) * (rank - lo)


def mttr_stats(durations: Iterable[float]) -> MttrStats:
    sample = sorted(durations)
    if not sample:
        return MttrStats(avg=None, median=None, p90=None)
    return MttrStats(
        avg=sum(sample) / len(sample),
        median=percentile(sample, 0.5),
        p90=percentile(sample, 0.9),
    )


class SlaPolicy:
    """Severity -> resolve-time target in seconds (deployment configuration)."""

    def __init__(self, targets: Optional[Dict[str, int]] = None):
        raw = targets or settings.sla_targets()
        self._targets = {Severity(k): int(v) for k, v in raw.items()}

    def target_seconds(self, severity: Severity) -> int:
        return self._targets.get(Severity(severity), self._targets[Severity.SEV4])

    def is_met(self, incident: Incident) -> Optional[bool]:
        seconds = incident.resolve_seconds
        if seconds is None:
            return None
        return seconds <= self.target_seconds(incident.severity)


def compute_kpis(population: List[Incident], sla: SlaPolicy) -> Kpis:
    resolved = [i for i in population if i.resolved_at is not None]
    met = [sla.is_met(i) for i in resolved]
    compliance = None
    if resolved:
        compliance = round(100.0 * sum(1 for m in met if m) / len(resolved), 1)
    return Kpis(
        open_count=sum(1 for i in population if i.status not in OPEN_EXCLUDED_STATUSES),
        resolved_count=sum(1 for i in resolved if i.status in RESOLVED_STATUSES),
        closed_count=sum(1 for i in population if i.status == IncidentStatus.CLOSED),
        mttr_seconds=mttr_stats(i.resolve_seconds for i in resolved),
        sla_compliance_pct=compliance,
    )


class MetricsAggregator:
    def __init__(self, repo: IncidentRepository, sla: Optional[SlaPolicy] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._repo = repo
        self._sla = sla or SlaPolicy()
        self._now = clock or (lambda: datetime.now(timezone.utc))

    @property
    def sla(self) -> SlaPolicy:
        return self._sla

    def get_kpis(self, report_filter: ReportFilter) -> Kpis:
        population = self._repo.find_incidents(report_filter.to_criteria(self._now()))
        REPORTS_GENERATED.labels(kind="kpis").inc()
        return compute_kpis(population, self._sla)
