# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models: pure data structures, NO FastAPI dependency.

Every model serialises with camelCase aliases and still accepts the
snake_case field names on construction.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ims.core.errors import ValidationError


class IncidentStatus(str, Enum):
    NEW = "NEW"
    TRIAGED = "TRIAGED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REOPENED = "REOPENED"


class Severity(str, Enum):
    """Ordered from most (SEV1) to least (SEV4) critical."""

    SEV1 = "SEV1"
    SEV2 = "SEV2"
    SEV3 = "SEV3"
    SEV4 = "SEV4"


class TimelineEventType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    COMMENT = "COMMENT"
    FIELD_UPDATE = "FIELD_UPDATE"
    ASSIGNMENT = "ASSIGNMENT"


class GroupBy(str, Enum):
    SEVERITY = "severity"
    STATUS = "status"
    TEAM = "team"
    SERVICE = "service"
    CATEGORY = "category"
    ASSIGNEE = "assignee"


class Interval(str, Enum):
    DAY = "day"
    WEEK = "week"


DEFAULT_SEVERITY = Severity.SEV3
PAGING_SEVERITIES = frozenset({Severity.SEV1, Severity.SEV2})
OPEN_EXCLUDED_STATUSES = frozenset({IncidentStatus.RESOLVED, IncidentStatus.CLOSED})
RESOLVED_STATUSES = frozenset(
    {IncidentStatus.RESOLVED, IncidentStatus.REOPENED, IncidentStatus.CLOSED}
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EntityRef(DomainModel):
    """Reference to a related entity together with its display name."""

    id: str
    name: str


class Incident(DomainModel):
    id: str
    title: str
    description: str = ""
    status: IncidentStatus = IncidentStatus.NEW
    severity: Severity = DEFAULT_SEVERITY
    created_at: datetime
    updated_at: Optional[datetime] = None
    triaged_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reporter: EntityRef
    assignee: Optional[EntityRef] = None
    team: Optional[EntityRef] = None
    primary_service: Optional[EntityRef] = None
    categories: List[EntityRef] = Field(default_factory=list)
    tags: List[EntityRef] = Field(default_factory=list)
    audit_hash: Optional[str] = None
    audit_hash_updated_at: Optional[datetime] = None

    @property
    def resolve_seconds(self) -> Optional[float]:
        """Seconds from creation to first resolution, None while unresolved."""
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.created_at).total_seconds()


class TimelineEvent(DomainModel):
    """Immutable audit record; append-only."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    incident_id: str
    type: TimelineEventType
    from_status: Optional[IncidentStatus] = None
    to_status: Optional[IncidentStatus] = None
    message: Optional[str] = None
    author_id: Optional[str] = None
    author_name: Optional[str] = None
    created_at: datetime


class Comment(DomainModel):
    id: str
    incident_id: str
    author_id: str
    author_name: Optional[str] = None
    body: str
    created_at: datetime


class IncidentDetail(Incident):
    comments: List[Comment] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)


class IncidentCriteria(BaseModel):
    """Repository-level query over incidents. Ranges are half-open [from, before)."""

    status: Optional[IncidentStatus] = None
    severity: Optional[Severity] = None
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    service_id: Optional[str] = None
    service_key: Optional[str] = None
    search: Optional[str] = None
    created_from: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: Optional[int] = None

    @field_validator("created_from", "created_before")
    @classmethod
    def normalise_tz(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class ReportFilter(BaseModel):
    """Population selector shared by KPIs, breakdowns, trends and exports."""

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    last_days: Optional[int] = Field(default=None, ge=1, le=365)
    team_id: Optional[str] = None
    service_id: Optional[str] = None
    severity: Optional[Severity] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def normalise_tz(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    def check(self) -> "ReportFilter":
        if self.date_from and self.date_to and self.date_from >= self.date_to:
            raise ValidationError("'from' must be earlier than 'to'")
        return self

    def window(self, now: datetime) -> tuple:
        """Effective [from, to) bounds; lastDays applies only without explicit bounds."""
        start, end = self.date_from, self.date_to
        if start is None and end is None and self.last_days:
            start = now - timedelta(days=self.last_days)
        return start, end

    def to_criteria(self, now: datetime, limit: Optional[int] = None) -> IncidentCriteria:
        start, end = self.check().window(now)
        return IncidentCriteria(
            severity=self.severity,
            team_id=self.team_id,
            service_id=self.service_id,
            created_from=start,
            created_before=end,
            limit=limit,
        )
