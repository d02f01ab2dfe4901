"""Prometheus metric definitions shared across services."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


fulfillment_events_total = Counter(
    "fulfillment_events_total",
    "Checkout-completed events processed, by outcome",
    ["outcome"],
)
webhook_requests_total = Counter(
    "webhook_requests_total",
    "Inbound payment webhooks by event type and status code",
    ["event_type", "status_code"],
)
ledger_postings_total = Counter("ledger_postings_total", "Ledger postings applied", ["type"])
duplicate_events_skipped_total = Counter(
    "duplicate_events_skipped_total",
    "Duplicate inbox events or ledger keys skipped",
    ["source"],
)
access_attempts_total = Counter("access_attempts_total", "Content access attempts", ["result"])
products_purged_total = Counter("products_purged_total", "Products removed by cleanup or owner", ["reason"])
cascade_rows_deleted_total = Counter(
    "cascade_rows_deleted_total",
    "Dependent rows removed during product purge",
    ["table"],
)
storage_failures_total = Counter("storage_failures_total", "Object storage call failures", ["operation"])
payouts_total = Counter("payouts_total", "Payout attempts by result", ["result"])
payout_amount_cents_total = Counter("payout_amount_cents_total", "Gross cents debited by payouts")
emails_total = Counter("emails_total", "Emails handed to the provider", ["kind", "result"])
job_runs_total = Counter("job_runs_total", "Scheduled job runs", ["job", "result"])
job_duration_seconds = Histogram("job_duration_seconds", "Scheduled job duration seconds", ["job"])
outbox_pending_total = Gauge(
    "outbox_pending_total",
    "Current count of notification intents not yet sent",
    ["service"],
)
outbox_oldest_pending_age_seconds = Gauge(
    "outbox_oldest_pending_age_seconds",
    "Age in seconds of the oldest pending notification intent",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
