# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Pydantic request/response schemas (camelCase on the wire)."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ims.models.domain import IncidentStatus, Severity


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ──────────────────────────────────────────────────────────────

def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("title cannot be blank")
    return v


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    return v.strip() or None


class IncidentCreate(ApiModel):
    """Any status supplied by the caller is ignored; incidents always start NEW.
    The primary service may be given by id or by its unique key."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="", max_length=20000)
    severity: Optional[Severity] = None
    team_id: Optional[str] = None
    assignee_id: Optional[str] = None
    primary_service_id: Optional[str] = None
    primary_service_key: Optional[str] = None
    category_ids: Optional[List[str]] = None
    tag_ids: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return _clean_title(v)

    @field_validator("team_id", "assignee_id", "primary_service_id", "primary_service_key")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class IncidentFieldsUpdate(ApiModel):
    """Partial update; only fields present in the request are applied.
    An empty string or null for assigneeId/teamId/primaryServiceId/primaryServiceKey
    clears it."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=20000)
    severity: Optional[Severity] = None
    assignee_id: Optional[str] = None
    team_id: Optional[str] = None
    primary_service_id: Optional[str] = None
    primary_service_key: Optional[str] = None
    category_ids: Optional[List[str]] = None
    tag_ids: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)

    @field_validator("team_id", "assignee_id", "primary_service_id", "primary_service_key")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class StatusChange(ApiModel):
    new_status: IncidentStatus
    message: Optional[str] = Field(default=None, max_length=5000)


class CommentCreate(ApiModel):
    body: str = Field(..., min_length=1, max_length=20000)

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Comment body cannot be empty")
        return v


# ── Responses ─────────────────────────────────────────────────────────────

class MttrStats(ApiModel):
    avg: Optional[float] = None
    median: Optional[float] = None
    p90: Optional[float] = None


class Kpis(ApiModel):
    open_count: int
    resolved_count: int
    closed_count: int
    mttr_seconds: MttrStats
    sla_compliance_pct: Optional[float] = None


class BreakdownItem(ApiModel):
    key: str
    label: str
    count: int


class TimeseriesPoint(ApiModel):
    date: str
    count: int


class DeleteResult(ApiModel):
    deleted: bool


class SubscriptionResult(ApiModel):
    subscribed: bool


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
