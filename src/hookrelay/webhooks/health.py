"""Delivery health report computed from the delivery log.

Summarizes a window of attempts (normally the last 24 hours) into a
healthy / degraded / unhealthy status with the metrics and issues that
explain it.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Literal

from pydantic import BaseModel, Field

from hookrelay.models import DeliveryAttempt, utc_now

HealthStatus = Literal["healthy", "degraded", "unhealthy"]
IssueSeverity = Literal["low", "medium", "high", "critical"]

HEALTH_WINDOW = timedelta(hours=24)
RECENT_WINDOW = timedelta(hours=1)

# Thresholds
DELIVERY_RATE_WARN = 95.0
DELIVERY_RATE_HIGH = 90.0
DELIVERY_RATE_CRITICAL = 80.0
DELIVERY_RATE_UNHEALTHY = 50.0
LATENCY_WARN_MS = 5000
LATENCY_HIGH_MS = 10000
LATENCY_DEGRADED_MS = 3000
RECURRING_ERROR_MIN = 5
RECURRING_ERROR_HIGH = 20


class HealthIssue(BaseModel):
    """One problem detected in the window."""

    type: str
    severity: IssueSeverity
    message: str
    count: int = 0


class HealthMetrics(BaseModel):
    delivery_rate: float = Field(description="Percentage of finished attempts delivered")
    average_latency_ms: int
    total_deliveries: int
    failed_deliveries: int
    recent_deliveries: int = Field(description="Attempts in the last hour")
    errors_by_type: dict[str, int] = Field(default_factory=dict)


class HealthPerformance(BaseModel):
    p95_latency_ms: int
    p99_latency_ms: int
    throughput: int = Field(description="Attempts in the window")


class WebhookHealthReport(BaseModel):
    """Health of webhook deliveries over a time window.

    Attributes:
        status: Overall verdict.
        timestamp: When the report was computed.
        metrics: Delivery counts and rates.
        performance: Latency percentiles of delivered attempts.
        issues: Problems that drove the verdict.
    """

    status: HealthStatus
    timestamp: datetime
    metrics: HealthMetrics
    performance: HealthPerformance
    issues: list[HealthIssue] = Field(default_factory=list)

    @property
    def http_status(self) -> int:
        """503 when unhealthy so load balancers can act on it."""
        return 503 if self.status == "unhealthy" else 200


def classify_failure(attempt: DeliveryAttempt) -> str:
    """Coarse error category for a failed attempt.

    Examples:
        HTTP 503 response -> "http_5xx"
        "Request timeout" -> "timeout"
        connection refused -> "connection_error"
    """
    if attempt.http_status_code is not None:
        return f"http_{attempt.http_status_code // 100}xx"
    message = (attempt.error_message or "").lower()
    if "timeout" in message or "timed out" in message:
        return "timeout"
    return "connection_error"


def _percentile(sorted_values: list[int], fraction: float) -> int:
    if not sorted_values:
        return 0
    index = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


def compute_webhook_health(
    attempts: Iterable[DeliveryAttempt],
    now: datetime | None = None,
) -> WebhookHealthReport:
    """Build a health report from the attempts of one window.

    Pending attempts are ignored; only finished attempts count toward the
    delivery rate. An empty window is healthy with a 100% delivery rate.

    Args:
        attempts: Attempts created within the window.
        now: Reference time (defaults to the current UTC time).
    """
    now = now or utc_now()
    finished = [a for a in attempts if a.is_final]

    total = len(finished)
    failed = [a for a in finished if a.status == "failed"]
    delivered = [a for a in finished if a.status == "delivered"]
    delivery_rate = ((total - len(failed)) / total) * 100 if total else 100.0

    latencies = sorted(a.latency_ms for a in delivered if a.latency_ms)
    average_latency = sum(latencies) / len(latencies) if latencies else 0.0

    errors_by_type = dict(Counter(classify_failure(a) for a in failed))
    recent = sum(1 for a in finished if a.created_at > now - RECENT_WINDOW)

    issues: list[HealthIssue] = []

    if delivery_rate < DELIVERY_RATE_WARN:
        if delivery_rate < DELIVERY_RATE_CRITICAL:
            severity: IssueSeverity = "critical"
        elif delivery_rate < DELIVERY_RATE_HIGH:
            severity = "high"
        else:
            severity = "medium"
        issues.append(
            HealthIssue(
                type="low_delivery_rate",
                severity=severity,
                message=f"Webhook delivery rate is {delivery_rate:.1f}%",
                count=len(failed),
            )
        )

    if average_latency > LATENCY_WARN_MS:
        issues.append(
            HealthIssue(
                type="high_latency",
                severity="high" if average_latency > LATENCY_HIGH_MS else "medium",
                message=f"Average webhook latency is {average_latency:.0f}ms",
                count=sum(1 for latency in latencies if latency > LATENCY_WARN_MS),
            )
        )

    for error_type, count in errors_by_type.items():
        if count > RECURRING_ERROR_MIN:
            issues.append(
                HealthIssue(
                    type="recurring_error",
                    severity="high" if count > RECURRING_ERROR_HIGH else "medium",
                    message=f"{count} {error_type} errors in the last 24h",
                    count=count,
                )
            )

    if recent == 0 and total > 0:
        issues.append(
            HealthIssue(
                type="no_recent_activity",
                severity="medium",
                message="No webhook deliveries in the last hour",
            )
        )

    severities = {issue.severity for issue in issues}
    status: HealthStatus = "healthy"
    if "critical" in severities or delivery_rate < DELIVERY_RATE_UNHEALTHY:
        status = "unhealthy"
    elif (
        "high" in severities
        or delivery_rate < DELIVERY_RATE_HIGH
        or average_latency > LATENCY_DEGRADED_MS
    ):
        status = "degraded"

    return WebhookHealthReport(
        status=status,
        timestamp=now,
        metrics=HealthMetrics(
            delivery_rate=round(delivery_rate, 2),
            average_latency_ms=round(average_latency),
            total_deliveries=total,
            failed_deliveries=len(failed),
            recent_deliveries=recent,
            errors_by_type=errors_by_type,
        ),
        performance=HealthPerformance(
            p95_latency_ms=_percentile(latencies, 0.95),
            p99_latency_ms=_percentile(latencies, 0.99),
            throughput=total,
        ),
        issues=issues,
    )
