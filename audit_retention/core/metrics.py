"""Prometheus metrics for the retention pipeline."""

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "audit_retention_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "audit_retention_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

ARCHIVED_RECORDS = Counter(
    "audit_retention_archived_records_total",
    "Audit records written to archive files and removed from the live table",
    ["event_type"],
)
DELETED_RECORDS = Counter(
    "audit_retention_deleted_records_total",
    "Audit records deleted by cleanup without archival",
    ["event_type"],
)
RESTORED_RECORDS = Counter(
    "audit_retention_restored_records_total",
    "Audit records re-inserted from archive files",
    ["event_type"],
)
ARCHIVE_ERRORS = Counter(
    "audit_retention_archive_errors_total",
    "Archive writes that failed",
    ["event_type"],
)
WORKER_UP_GAUGE = Gauge("audit_retention_worker_up", "Retention worker liveness (1 running, 0 stopped)")
