"""Prometheus metrics: request count by route/status, latency, storage writes, stream reads, delete failures."""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total requests",
    ["method", "path", "status_class"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
STORAGE_WRITE_TOTAL = Counter(
    "uploads_storage_write_total",
    "Storage writes",
    ["namespace", "result"],  # avatars | attachments; success | failure
)
STREAM_TOTAL = Counter(
    "uploads_stream_total",
    "File stream requests",
    ["result"],  # found | not_found
)
DELETE_FAILURE_TOTAL = Counter(
    "uploads_delete_failure_total",
    "Best-effort deletes that failed and were swallowed",
    ["operation"],  # delete_file | delete_folder
)


def _status_class(status: int) -> str:
    if status < 200:
        return "1xx"
    if status < 300:
        return "2xx"
    if status < 400:
        return "3xx"
    if status < 500:
        return "4xx"
    return "5xx"


def record_request(method: str, path: str, status_code: int, latency_seconds: float) -> None:
    path = path or "/"
    # Normalize path to avoid high cardinality (one label per route family)
    if path.startswith("/uploads/file/"):
        path = "/uploads/file/{key}"
    elif path.startswith("/uploads/avatars/"):
        path = "/uploads/avatars/{filename}"
    elif path.startswith("/uploads/attachments/"):
        path = "/uploads/attachments/{path}"
    sc = _status_class(status_code)
    REQUEST_COUNT.labels(method=method, path=path, status_class=sc).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(latency_seconds)


def record_storage_write(namespace: str, ok: bool) -> None:
    STORAGE_WRITE_TOTAL.labels(namespace=namespace, result="success" if ok else "failure").inc()


def record_stream(found: bool) -> None:
    STREAM_TOTAL.labels(result="found" if found else "not_found").inc()


def record_delete_failure(operation: str, target: str, error: Exception) -> None:
    """Default delete-failure hook for the storage gateway."""
    _ = target, error
    DELETE_FAILURE_TOTAL.labels(operation=operation).inc()


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
