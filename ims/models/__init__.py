# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Domain package: re-exports the incident domain types."""
from ims.models.domain import (
    Comment,
    EntityRef,
    GroupBy,
    Incident,
    IncidentCriteria,
    IncidentDetail,
    IncidentStatus,
    Interval,
    ReportFilter,
    Severity,
    TimelineEvent,
    TimelineEventType,
)

__all__ = [
    "Comment",
    "EntityRef",
    "GroupBy",
    "Incident",
    "IncidentCriteria",
    "IncidentDetail",
    "IncidentStatus",
    "Interval",
    "ReportFilter",
    "Severity",
    "TimelineEvent",
    "TimelineEventType",
]
