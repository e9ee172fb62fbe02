"""Prometheus metric definitions shared across the payment core."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total PIX payment attempts", ["service"])
payment_success_total = Counter("payment_success_total", "Total PIX charges made payable", ["service"])
payment_failure_total = Counter(
    "payment_failure_total",
    "Total failed PIX payment attempts",
    ["service", "reason"],
)
payment_e2e_seconds = Histogram(
    "payment_e2e_seconds",
    "Payment attempt duration seconds from VALIDATING to terminal",
    ["service", "terminal_state"],
)
rate_limited_total = Counter("rate_limited_total", "Payment attempts denied by the rate limiter", ["service"])
duplicate_attempts_joined_total = Counter(
    "duplicate_attempts_joined_total",
    "Payment intents that joined an attempt already in flight",
    ["service"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
fallback_total = Counter("fallback_total", "Fallback provider requests", ["service", "outcome"])
poll_attempts_total = Counter("poll_attempts_total", "Transaction status checks", ["service", "outcome"])
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


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
