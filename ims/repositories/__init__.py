# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Repository package: re-exports the SQLAlchemy repositories."""
from ims.repositories.incident_repository import IncidentRepository
from ims.repositories.timeline_repository import TimelineRepository

__all__ = ["IncidentRepository", "TimelineRepository"]
