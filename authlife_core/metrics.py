"""
Prometheus Metrics
==================
Counters for OTP, reconciliation and anomaly outcomes.
"""

from prometheus_client import (
    Counter,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
import structlog

logger = structlog.get_logger(__name__)

# Custom registry so embedding services keep their default one clean
AUTHLIFE_REGISTRY = CollectorRegistry()

OTP_REQUESTS_TOTAL = Counter(
    name="authlife_otp_requests_total",
    documentation="OTP challenge requests by outcome",
    labelnames=["channel", "outcome"],
    registry=AUTHLIFE_REGISTRY,
)

OTP_VERIFICATIONS_TOTAL = Counter(
    name="authlife_otp_verifications_total",
    documentation="OTP verification attempts by status",
    labelnames=["channel", "status"],
    registry=AUTHLIFE_REGISTRY,
)

PROFILE_RECONCILIATIONS_TOTAL = Counter(
    name="authlife_profile_reconciliations_total",
    documentation="Profile reconciliation results",
    labelnames=["outcome"],
    registry=AUTHLIFE_REGISTRY,
)

ANOMALY_REPORTS_TOTAL = Counter(
    name="authlife_anomaly_reports_total",
    documentation="Anomaly reports produced by the detector",
    labelnames=["severity", "kind"],
    registry=AUTHLIFE_REGISTRY,
)


def record_otp_request(channel: str, outcome: str) -> None:
    OTP_REQUESTS_TOTAL.labels(channel=channel, outcome=outcome).inc()


def record_otp_verification(channel: str, status: str) -> None:
    OTP_VERIFICATIONS_TOTAL.labels(channel=channel, status=status).inc()


def record_reconciliation(outcome: str) -> None:
    PROFILE_RECONCILIATIONS_TOTAL.labels(outcome=outcome).inc()


def record_anomaly_report(severity: str, kind: str) -> None:
    ANOMALY_REPORTS_TOTAL.labels(severity=severity, kind=kind).inc()


def get_metrics_text() -> str:
    """Get all engine metrics in Prometheus text format."""
    return generate_latest(AUTHLIFE_REGISTRY).decode("utf-8")


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
