"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- ledger_journal_entries_total: Journal entries by lifecycle event
- ledger_journal_entries_rejected_total: Rejected entries by error code
- ledger_budget_alerts_total: Budget alerts emitted by type
- ledger_rate_lookup_failures_total: Conversions that found no rate
- ledger_accounts: Active accounts per company
- ledger_pending_budget_alerts: Pending alerts per company
- ledger_request_duration_seconds: HTTP request duration histogram
"""
import logging
import re
import time

from django.db.models import Count
from django.http import HttpResponse
from django.views import View

logger = logging.getLogger(__name__)

_metrics_initialized = False

# Metric references (initialized lazily)
_journal_entries_total = None
_journal_entries_rejected = None
_budget_alerts_total = None
_rate_lookup_failures = None
_accounts_gauge = None
_pending_alerts_gauge = None
_request_duration = None
_active_requests = None


def _init_prometheus():
    """Initialize Prometheus metrics (lazy)."""
    global _metrics_initialized
    global _journal_entries_total, _journal_entries_rejected, _budget_alerts_total
    global _rate_lookup_failures, _accounts_gauge, _pending_alerts_gauge
    global _request_duration, _active_requests

    if _metrics_initialized:
        return

    from prometheus_client import Counter, Gauge, Histogram

    # Ledger write metrics
    _journal_entries_total = Counter(
        "ledger_journal_entries_total",
        "Journal entry lifecycle events",
        ["event"],
    )

    _journal_entries_rejected = Counter(
        "ledger_journal_entries_rejected_total",
        "Journal entries rejected by validation",
        ["code"],
    )

    _budget_alerts_total = Counter(
        "ledger_budget_alerts_total",
        "Budget alerts emitted",
        ["alert_type"],
    )

    _rate_lookup_failures = Counter(
        "ledger_rate_lookup_failures_total",
        "Currency conversions that found no exchange rate",
        ["from_currency", "to_currency"],
    )

    # Snapshot gauges (filled by collect_metrics)
    _accounts_gauge = Gauge(
        "ledger_accounts",
        "Active accounts in the chart of accounts",
        ["company_slug"],
    )

    _pending_alerts_gauge = Gauge(
        "ledger_pending_budget_alerts",
        "Budget alerts waiting for delivery or acknowledgement",
        ["company_slug"],
    )

    # Request metrics
    _request_duration = Histogram(
        "ledger_request_duration_seconds",
        "HTTP request duration in seconds",
        ["method", "endpoint", "status"],
        buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )

    _active_requests = Gauge(
        "ledger_active_requests",
        "Number of requests currently being processed",
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


def record_journal_entry(event: str) -> None:
    """Count a journal entry lifecycle event: created, posted, reversed, deleted."""
    _init_prometheus()
    _journal_entries_total.labels(event=event).inc()


def record_journal_entry_rejected(code: str) -> None:
    _init_prometheus()
    _journal_entries_rejected.labels(code=code).inc()


def record_budget_alert(alert_type: str) -> None:
    _init_prometheus()
    _budget_alerts_total.labels(alert_type=alert_type).inc()


def record_rate_lookup_failure(from_currency: str, to_currency: str) -> None:
    _init_prometheus()
    _rate_lookup_failures.labels(
        from_currency=from_currency,
        to_currency=to_currency,
    ).inc()


def collect_metrics():
    """Collect current snapshot values."""
    _init_prometheus()

    from accounting.models import Account
    from budgets.models import BudgetAlert

    account_counts = (
        Account.objects
        .filter(is_active=True)
        .values("company__slug")
        .annotate(count=Count("id"))
    )
    for row in account_counts:
        _accounts_gauge.labels(company_slug=row["company__slug"]).set(row["count"])

    pending_counts = (
        BudgetAlert.objects
        .filter(status=BudgetAlert.Status.PENDING)
        .values("company__slug")
        .annotate(count=Count("id"))
    )
    for row in pending_counts:
        _pending_alerts_gauge.labels(company_slug=row["company__slug"]).set(row["count"])


def get_prometheus_response():
    """Generate Prometheus metrics response."""
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

    try:
        collect_metrics()
    except Exception as e:
        # Counters are still worth serving when the snapshot query fails.
        logger.error(f"Error collecting metrics: {e}")

    output = generate_latest()
    return HttpResponse(output, content_type=CONTENT_TYPE_LATEST)


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /_metrics.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        return get_prometheus_response()


def track_request_metrics(get_response):
    """
    Middleware to track request duration metrics.

    Add to MIDDLEWARE after SecurityMiddleware:
        "ops.metrics.track_request_metrics",
    """
    _init_prometheus()

    def middleware(request):
        start = time.time()
        _active_requests.inc()
        status = 500

        try:
            response = get_response(request)
            status = response.status_code
            return response
        finally:
            _active_requests.dec()
            duration = time.time() - start

            # Normalize endpoint for cardinality control
            endpoint = re.sub(r"/\d+/", "/{id}/", request.path)
            endpoint = re.sub(r"/[0-9a-f-]{36}/", "/{uuid}/", endpoint)

            _request_duration.labels(
                method=request.method,
                endpoint=endpoint[:50],  # Truncate long paths
                status=f"{status // 100}xx",
            ).observe(duration)

    return middleware
