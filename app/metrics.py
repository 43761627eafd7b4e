from prometheus_client import Counter, Histogram

LIFECYCLE_OPERATIONS = Counter(
    "document_lifecycle_operations_total",
    "Document lifecycle operations by outcome",
    ["operation", "outcome"],
)
PDF_LOCKS = Counter(
    "document_pdf_locks_total",
    "Locked PDF attempts by outcome",
    ["outcome"],
)
INTEGRITY_VIOLATIONS = Counter(
    "document_integrity_violations_total",
    "Lifecycle integrity violations detected",
    ["kind"],
)
HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by method, route and status",
    ["method", "route", "status"],
)
HTTP_REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
)
