# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: incident-creation trend in day or week buckets (UTC).

Every bucket between the range start and end is emitted, empty ones with
count 0, so a plotted series never has implicit gaps. Weeks start on Monday.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ims.core.errors import ValidationError
from ims.metrics import REPORTS_GENERATED
from ims.models.domain import Interval, ReportFilter, as_utc
from ims.repositories.incident_repository import IncidentRepository
from ims.schemas import TimeseriesPoint

STEPS = {
    Interval.DAY: timedelta(days=1),
    Interval.WEEK: timedelta(weeks=1),
}


def parse_interval(value) -> Interval:
    try:
        return Interval(value)
    except ValueError:
        allowed = [i.value for i in Interval]
        raise ValidationError(f"Unknown interval '{value}'. Allowed: {allowed}") from None


def truncate(moment: datetime, interval: Interval) -> datetime:
    moment = as_utc(moment)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval is Interval.WEEK:
        return day - timedelta(days=day.weekday())
    return day


def bucket_counts(created: List[datetime], interval: Interval,
                  start: datetime, end: datetime) -> List[TimeseriesPoint]:
    """Counts per bucket for every bucket whose start lies in [trunc(start), end)."""
    counts: Dict[datetime, int] = {}
    for moment in created:
        key = truncate(moment, interval)
        counts[key] = counts.get(key, 0) + 1

    points = []
    step = STEPS[interval]
    cursor = truncate(start, interval)
    while cursor < end:
        points.append(TimeseriesPoint(date=cursor.isoformat(), count=counts.get(cursor, 0)))
        cursor += step
    return points


class TimeseriesEngine:
    def __init__(self, repo: IncidentRepository,
                 clock: Optional[Callable[[], datetime]] = None):
        self._repo = repo
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def get_timeseries(self, report_filter: ReportFilter, interval) -> List[TimeseriesPoint]:
        step = parse_interval(interval)
        now = self._now()
        population = self._repo.find_incidents(report_filter.to_criteria(now),
                                               newest_first=False)
        REPORTS_GENERATED.labels(kind="timeseries").inc()

        start, end = report_filter.window(now)
        created = [as_utc(i.created_at) for i in population]
        if start is None:
            if not created:
                return []
            start = min(created)
        if end is None:
            # Bucket containing "now" is the last one.
            end = max([as_utc(now)] + created) + timedelta(microseconds=1)
        return bucket_counts(created, step, start, end)
