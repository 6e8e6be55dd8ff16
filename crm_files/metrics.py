from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path", "status"],
)
FILE_OPERATIONS = Counter(
    "file_registry_operations_total",
    "File registry operations by outcome",
    ["operation", "outcome"],
)


def observe_file_operation(operation: str, outcome: str) -> None:
    FILE_OPERATIONS.labels(operation=operation, outcome=outcome).inc()
