# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics: single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""
from prometheus_client import Counter, Gauge, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "ims_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "ims_request_duration_seconds", "HTTP request latency", ["method", "endpoint"]
)
HTTP_ERRORS = Counter(
    "ims_http_errors_total", "Total HTTP errors", ["method", "endpoint", "status"]
)

# ── Business Metrics (updated by service layer only) ──
INCIDENTS_CREATED = Counter(
    "incidents_created_total", "Total incidents created", ["severity"]
)
INCIDENTS_TOTAL = Gauge(
    "incidents_total", "Current incidents by status", ["status"]
)
STATUS_TRANSITIONS = Counter(
    "incident_status_transitions_total", "Applied status transitions", ["from_status", "to_status"]
)
COMMENTS_ADDED = Counter(
    "incident_comments_total", "Comments added to incidents"
)
INCIDENT_MTTR = Histogram(
    "incident_mttr_seconds",
    "Time from creation to first resolution (seconds)",
    buckets=[60, 300, 600, 1800, 3600, 7200, 14400, 28800, 86400],
)
NOTIFICATIONS_SENT = Counter(
    "incident_notifications_total", "Notification dispatch attempts", ["channel", "outcome"]
)
REPORTS_GENERATED = Counter(
    "incident_reports_total", "Reports computed", ["kind"]
)
