"""
Audit Correlation
=================
Audit event recording and anomaly detection.
"""

from .event_types import AuditAction, SUCCESS_ACTIONS
from .models import AuditEvent
from .store import AuditEventStore
from .recorder import AuditRecorder
from .reports import (
    ActorInvestigation,
    AnomalyKind,
    AnomalyReport,
    HealthMetrics,
    InvestigationConclusion,
    LegitimateBlockedCandidate,
    RateLimitStatus,
    RecentBlockedDestination,
    RetryableDestination,
    Severity,
)
from .detector import (
    AnomalyDetector,
    classify_window,
    estimate_rate_limit_status,
    is_plausible_destination,
)
from .scheduler import DetectionScheduler

__all__ = [
    "AuditAction",
    "SUCCESS_ACTIONS",
    "AuditEvent",
    "AuditEventStore",
    "AuditRecorder",
    "ActorInvestigation",
    "AnomalyKind",
    "AnomalyReport",
    "HealthMetrics",
    "InvestigationConclusion",
    "LegitimateBlockedCandidate",
    "RateLimitStatus",
    "RecentBlockedDestination",
    "RetryableDestination",
    "Severity",
    "AnomalyDetector",
    "classify_window",
    "estimate_rate_limit_status",
    "is_plausible_destination",
    "DetectionScheduler",
]
