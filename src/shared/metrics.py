from __future__ import annotations

from prometheus_client import Counter, Histogram

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

WEBHOOK_RECONCILIATIONS_TOTAL = Counter(
    "webhook_reconciliations_total",
    "Inbound payment webhooks by reconciliation outcome",
    ["outcome"],
)

WEBHOOK_MALFORMED_PAYLOADS_TOTAL = Counter(
    "webhook_malformed_payloads_total",
    "Inbound webhook bodies that could not be parsed as JSON",
)

ORDER_SYSTEM_REQUESTS_TOTAL = Counter(
    "order_system_requests_total",
    "Calls made to the order system",
    ["operation", "result"],
)
