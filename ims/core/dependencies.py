# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection: wire repositories and services.
"""

from ims.core.database import engine
from ims.repositories.incident_repository import IncidentRepository
from ims.repositories.timeline_repository import TimelineRepository
from ims.services.audit import IncidentAuditor
from ims.services.breakdown import BreakdownEngine
from ims.services.incident_service import IncidentService
from ims.services.metrics_aggregator import MetricsAggregator
from ims.services.notification_gateway import NotificationGateway
from ims.services.notification_trigger import NotificationTrigger
from ims.services.report_exporter import ReportExporter
from ims.services.timeline import TimelineRecorder
from ims.services.timeseries import TimeseriesEngine

# ── Singleton repository instances ──
_incident_repo = IncidentRepository(engine)
_timeline_repo = TimelineRepository(engine)

# ── Collaborators ──
_timeline = TimelineRecorder(_timeline_repo)
_auditor = IncidentAuditor(_incident_repo, _timeline_repo)
_notification_gateway = NotificationGateway()
_notifier = NotificationTrigger(_notification_gateway)

# ── Service instances (with injected dependencies) ──
_incident_service = IncidentService(
    repo=_incident_repo,
    timeline=_timeline,
    notifier=_notifier,
    auditor=_auditor,
)
_metrics_aggregator = MetricsAggregator(repo=_incident_repo)
_breakdown_engine = BreakdownEngine(repo=_incident_repo)
_timeseries_engine = TimeseriesEngine(repo=_incident_repo)
_report_exporter = ReportExporter(
    repo=_incident_repo,
    timeline=_timeline,
    aggregator=_metrics_aggregator,
    auditor=_auditor,
)


# ── FastAPI dependency functions ──
def get_incident_service() -> IncidentService:
    return _incident_service


def get_metrics_aggregator() -> MetricsAggregator:
    return _metrics_aggregator


def get_breakdown_engine() -> BreakdownEngine:
    return _breakdown_engine


def get_timeseries_engine() -> TimeseriesEngine:
    return _timeseries_engine


def get_report_exporter() -> ReportExporter:
    return _report_exporter


def get_incident_repo() -> IncidentRepository:
    return _incident_repo


def get_notifier() -> NotificationTrigger:
    return _notifier
