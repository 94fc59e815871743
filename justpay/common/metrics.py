"""Prometheus metric definitions for the payment API."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
payment_links_created_total = Counter(
    "payment_links_created_total",
    "Payment links created through the provider",
    ["service", "flow"],
)
platform_fee_cents_total = Counter(
    "platform_fee_cents_total",
    "Platform application fees requested, in minor units",
    ["service", "currency"],
)
provider_errors_total = Counter(
    "provider_errors_total",
    "Errors reported by the payment provider",
    ["service", "operation", "not_found"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Verified webhook events received",
    ["service", "event_type"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
