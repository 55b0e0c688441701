"""Tests for the delivery health report."""

from datetime import timedelta

from hookrelay.models import DeliveryAttempt, utc_now
from hookrelay.webhooks.health import classify_failure, compute_webhook_health

NOW = utc_now()


def attempt(
    status: str = "delivered",
    latency_ms: int = 100,
    age: timedelta = timedelta(minutes=10),
    http_status_code: int | None = None,
    error: str = "HTTP 500",
) -> DeliveryAttempt:
    record = DeliveryAttempt(
        subscription_id="whk_1",
        user_id="user_1",
        delivery_id="d-1",
        payload={},
        created_at=NOW - age,
    )
    if status == "delivered":
        record.mark_delivered(http_status_code or 200, latency_ms=latency_ms)
    elif status == "failed":
        record.mark_failed(error, http_status_code=http_status_code, latency_ms=latency_ms)
    return record


def batch(delivered: int, failed: int, **kwargs) -> list[DeliveryAttempt]:
    return [attempt("delivered", **kwargs) for _ in range(delivered)] + [
        attempt("failed", http_status_code=500, **kwargs) for _ in range(failed)
    ]


def issue_types(report) -> set[str]:
    return {issue.type for issue in report.issues}


class TestStatus:
    """Overall verdict from rate and latency."""

    def test_all_delivered_is_healthy(self):
        report = compute_webhook_health(batch(100, 0), now=NOW)

        assert report.status == "healthy"
        assert report.http_status == 200
        assert report.issues == []
        assert report.metrics.delivery_rate == 100.0
        assert report.metrics.total_deliveries == 100
        assert report.metrics.average_latency_ms == 100

    def test_empty_window_is_healthy(self):
        report = compute_webhook_health([], now=NOW)

        assert report.status == "healthy"
        assert report.metrics.delivery_rate == 100.0
        assert report.metrics.total_deliveries == 0
        assert report.performance.p95_latency_ms == 0
        assert report.issues == []

    def test_slightly_low_rate_is_reported_but_healthy(self):
        report = compute_webhook_health(batch(93, 7), now=NOW)

        assert report.status == "healthy"
        [rate_issue] = [i for i in report.issues if i.type == "low_delivery_rate"]
        assert rate_issue.severity == "medium"
        assert rate_issue.count == 7

    def test_rate_below_90_is_degraded(self):
        report = compute_webhook_health(batch(85, 15), now=NOW)

        assert report.status == "degraded"
        [rate_issue] = [i for i in report.issues if i.type == "low_delivery_rate"]
        assert rate_issue.severity == "high"

    def test_rate_below_80_is_unhealthy(self):
        report = compute_webhook_health(batch(70, 30), now=NOW)

        assert report.status == "unhealthy"
        assert report.http_status == 503
        [rate_issue] = [i for i in report.issues if i.type == "low_delivery_rate"]
        assert rate_issue.severity == "critical"

    def test_rate_below_50_is_unhealthy(self):
        report = compute_webhook_health(batch(4, 6), now=NOW)

        assert report.status == "unhealthy"
        assert report.metrics.delivery_rate == 40.0

    def test_moderate_latency_is_degraded(self):
        report = compute_webhook_health(batch(10, 0, latency_ms=4000), now=NOW)

        assert report.status == "degraded"
        assert "high_latency" not in issue_types(report)

    def test_high_latency_issue(self):
        report = compute_webhook_health(batch(10, 0, latency_ms=12000), now=NOW)

        assert report.status == "degraded"
        [latency_issue] = [i for i in report.issues if i.type == "high_latency"]
        assert latency_issue.severity == "high"
        assert latency_issue.count == 10


class TestMetrics:
    """Counts, percentiles and error breakdown."""

    def test_pending_attempts_are_ignored(self):
        attempts = batch(9, 1) + [attempt("pending") for _ in range(50)]

        report = compute_webhook_health(attempts, now=NOW)

        assert report.metrics.total_deliveries == 10
        assert report.metrics.delivery_rate == 90.0

    def test_percentiles(self):
        attempts = [attempt(latency_ms=ms) for ms in range(1, 101)]

        report = compute_webhook_health(attempts, now=NOW)

        assert report.performance.p95_latency_ms == 96
        assert report.performance.p99_latency_ms == 100
        assert report.performance.throughput == 100

    def test_failed_latency_not_in_average(self):
        attempts = [attempt(latency_ms=200), attempt("failed", latency_ms=30000)]

        report = compute_webhook_health(attempts, now=NOW)

        assert report.metrics.average_latency_ms == 200

    def test_errors_by_type(self):
        attempts = [
            attempt("failed", http_status_code=503),
            attempt("failed", http_status_code=404, error="HTTP 404"),
            attempt("failed", error="Request timeout"),
            attempt("failed", error="Request error: Connection refused"),
        ]

        report = compute_webhook_health(attempts, now=NOW)

        assert report.metrics.errors_by_type == {
            "http_5xx": 1,
            "http_4xx": 1,
            "timeout": 1,
            "connection_error": 1,
        }
        assert report.metrics.failed_deliveries == 4

    def test_recurring_error_issue(self):
        report = compute_webhook_health(batch(200, 6), now=NOW)

        [recurring] = [i for i in report.issues if i.type == "recurring_error"]
        assert recurring.count == 6
        assert recurring.severity == "medium"
        assert "http_5xx" in recurring.message

    def test_five_errors_are_not_recurring(self):
        report = compute_webhook_health(batch(200, 5), now=NOW)

        assert "recurring_error" not in issue_types(report)

    def test_many_recurring_errors_are_high(self):
        report = compute_webhook_health(batch(1000, 21), now=NOW)

        [recurring] = [i for i in report.issues if i.type == "recurring_error"]
        assert recurring.severity == "high"
        assert report.status == "degraded"

    def test_no_recent_activity(self):
        report = compute_webhook_health(batch(5, 0, age=timedelta(hours=3)), now=NOW)

        assert report.metrics.recent_deliveries == 0
        assert "no_recent_activity" in issue_types(report)
        assert report.status == "healthy"


class TestClassifyFailure:
    def test_http_status_wins(self):
        assert classify_failure(attempt("failed", http_status_code=502)) == "http_5xx"

    def test_timeout(self):
        assert classify_failure(attempt("failed", error="Request timeout")) == "timeout"

    def test_other_transport_errors(self):
        assert classify_failure(attempt("failed", error="Request error: refused")) == (
            "connection_error"
        )
