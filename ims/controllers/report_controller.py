# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Reporting endpoints: KPIs, breakdowns, trends and exports.
Thin HTTP layer; the report engines do the work.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from starlette.responses import Response

from ims.core.config import settings
from ims.core.dependencies import (
    get_breakdown_engine,
    get_metrics_aggregator,
    get_report_exporter,
    get_timeseries_engine,
)
from ims.models.domain import ReportFilter, Severity
from ims.schemas import BreakdownItem, Kpis, TimeseriesPoint
from ims.services.breakdown import BreakdownEngine
from ims.services.metrics_aggregator import MetricsAggregator
from ims.services.report_exporter import ReportExporter
from ims.services.timeseries import TimeseriesEngine

router = APIRouter(prefix="/api/v1/reports", tags=["Reports"])


def report_filter(
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    last_days: Optional[int] = Query(None, alias="lastDays", ge=1, le=365),
    team_id: Optional[str] = Query(None, alias="teamId"),
    service_id: Optional[str] = Query(None, alias="serviceId"),
    severity: Optional[Severity] = None,
) -> ReportFilter:
    return ReportFilter(
        date_from=date_from,
        date_to=date_to,
        last_days=last_days,
        team_id=team_id,
        service_id=service_id,
        severity=severity,
    )


@router.get("/kpis", response_model=Kpis)
def get_kpis(
    flt: ReportFilter = Depends(report_filter),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
):
    """Open / resolved / closed counts, MTTR statistics and SLA compliance."""
    return aggregator.get_kpis(flt)


@router.get("/breakdown", response_model=List[BreakdownItem])
def get_breakdown(
    group_by: str = Query(..., alias="groupBy"),
    flt: ReportFilter = Depends(report_filter),
    engine: BreakdownEngine = Depends(get_breakdown_engine),
):
    return engine.get_breakdown(flt, group_by)


@router.get("/timeseries", response_model=List[TimeseriesPoint])
def get_timeseries(
    interval: str = Query("day"),
    flt: ReportFilter = Depends(report_filter),
    engine: TimeseriesEngine = Depends(get_timeseries_engine),
):
    """Incidents created per day or week, gaps filled with zero."""
    return engine.get_timeseries(flt, interval)


@router.get("/export.csv")
def export_csv(
    limit: Optional[int] = Query(None, ge=1, le=settings.EXPORT_MAX_LIMIT),
    flt: ReportFilter = Depends(report_filter),
    exporter: ReportExporter = Depends(get_report_exporter),
):
    content = exporter.export_csv(flt, limit=limit)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="incidents.csv"'},
    )


@router.get("/export/document")
def export_document(
    incident_id: Optional[str] = Query(None, alias="incidentId"),
    flt: ReportFilter = Depends(report_filter),
    exporter: ReportExporter = Depends(get_report_exporter),
):
    """Filter-scoped report, or an audited single-incident document."""
    doc = exporter.export_document(report_filter=flt, incident_id=incident_id)
    return Response(
        content=doc.content,
        media_type=doc.content_type,
        headers={"Content-Disposition": f'attachment; filename="{doc.filename}"'},
    )
