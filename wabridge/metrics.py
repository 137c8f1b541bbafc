"""
Prometheus counters for webhook deliveries and the notifications they carry.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: processed, invalid_signature, validation_error
webhook_requests_total = Counter(
    "webhook_requests_total",
    "Webhook deliveries by result",
    labelnames=["result"]
)

# outcome: created, duplicate, updated, not_found, unrecognized_status, dropped, skipped, error
notifications_total = Counter(
    "notifications_total",
    "Reconciled notifications by kind and outcome",
    labelnames=["kind", "outcome"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    path = path.split("?")[0]
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    request_latency_seconds.labels(method=method, path=path).observe(latency_seconds)


def record_webhook_outcome(result: str) -> None:
    webhook_requests_total.labels(result=result).inc()


def record_notification_outcome(kind: str, outcome: str) -> None:
    notifications_total.labels(kind=kind, outcome=outcome).inc()


def get_metrics() -> bytes:
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
