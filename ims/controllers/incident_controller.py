# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Incident lifecycle endpoints.
Thin HTTP layer. Delegates ALL logic to IncidentService. Domain errors
propagate to the exception handler registered in main.py.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ims.core.dependencies import get_incident_service
from ims.models.domain import (
    Comment,
    Incident,
    IncidentCriteria,
    IncidentDetail,
    IncidentStatus,
    Severity,
    TimelineEvent,
)
from ims.schemas import (
    CommentCreate,
    DeleteResult,
    IncidentCreate,
    IncidentFieldsUpdate,
    StatusChange,
    SubscriptionResult,
)
from ims.services.incident_service import IncidentService

router = APIRouter(prefix="/api/v1/incidents", tags=["Incidents"])


def _check_id(incident_id: str) -> str:
    try:
        uuid.UUID(incident_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid incident ID format")
    return incident_id


def actor_id(x_user_id: str = Header(..., alias="X-User-ID", min_length=1)) -> str:
    """Identity of the caller, set by the gateway after authentication."""
    return x_user_id


@router.post("", status_code=201, response_model=Incident)
def create_incident(
    payload: IncidentCreate,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    """Create an incident; it always starts NEW. SEV1/SEV2 page on-call."""
    return service.create_incident(payload, reporter_id=actor)


@router.get("", response_model=List[Incident])
def list_incidents(
    status: Optional[IncidentStatus] = None,
    severity: Optional[Severity] = None,
    assignee_id: Optional[str] = Query(None, alias="assigneeId"),
    team_id: Optional[str] = Query(None, alias="teamId"),
    primary_service_id: Optional[str] = Query(None, alias="primaryServiceId"),
    primary_service_key: Optional[str] = Query(None, alias="primaryServiceKey"),
    search: Optional[str] = Query(None, max_length=200),
    created_from: Optional[datetime] = Query(None, alias="createdFrom"),
    created_to: Optional[datetime] = Query(None, alias="createdTo"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: IncidentService = Depends(get_incident_service),
):
    """List incidents, newest first."""
    return service.list_incidents(IncidentCriteria(
        status=status,
        severity=severity,
        assignee_id=assignee_id,
        team_id=team_id,
        service_id=primary_service_id,
        service_key=primary_service_key,
        search=search,
        created_from=created_from,
        created_before=created_to,
        limit=limit,
    ))


@router.get("/{incident_id}", response_model=IncidentDetail)
def get_incident(
    incident_id: str,
    service: IncidentService = Depends(get_incident_service),
):
    """Incident with categories, tags, comments and the full timeline."""
    return service.get_incident(_check_id(incident_id))


@router.patch("/{incident_id}", response_model=Incident)
def update_incident_fields(
    incident_id: str,
    payload: IncidentFieldsUpdate,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    return service.update_fields(_check_id(incident_id), payload, actor_id=actor)


@router.patch("/{incident_id}/status", response_model=Incident)
def change_status(
    incident_id: str,
    payload: StatusChange,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    """Apply one state-machine transition; 409 when it is not allowed."""
    return service.change_status(
        _check_id(incident_id), payload.new_status, actor_id=actor, message=payload.message,
    )


@router.delete("/{incident_id}", response_model=DeleteResult)
def delete_incident(
    incident_id: str,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    """Only the reporter may delete; the timeline, comments and subscriptions go with it."""
    return service.delete_incident(_check_id(incident_id), actor_id=actor)


@router.post("/{incident_id}/comments", status_code=201, response_model=Comment)
def add_comment(
    incident_id: str,
    payload: CommentCreate,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    return service.add_comment(_check_id(incident_id), payload.body, actor_id=actor)


@router.get("/{incident_id}/comments", response_model=List[Comment])
def list_comments(
    incident_id: str,
    service: IncidentService = Depends(get_incident_service),
):
    return service.list_comments(_check_id(incident_id))


@router.get("/{incident_id}/timeline", response_model=List[TimelineEvent])
def get_timeline(
    incident_id: str,
    service: IncidentService = Depends(get_incident_service),
):
    return service.get_timeline(_check_id(incident_id))


@router.get("/{incident_id}/subscribers", response_model=List[str])
def list_subscribers(
    incident_id: str,
    service: IncidentService = Depends(get_incident_service),
):
    return service.subscribers(_check_id(incident_id))


@router.post("/{incident_id}/subscribe", response_model=SubscriptionResult)
def subscribe(
    incident_id: str,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    return service.subscribe(_check_id(incident_id), actor)


@router.delete("/{incident_id}/subscribe", response_model=SubscriptionResult)
def unsubscribe(
    incident_id: str,
    actor: str = Depends(actor_id),
    service: IncidentService = Depends(get_incident_service),
):
    return service.unsubscribe(_check_id(incident_id), actor)
