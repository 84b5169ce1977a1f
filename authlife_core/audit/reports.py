"""
Anomaly Reports
===============
Derived read models produced by the detector. Never persisted.
"""

from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, asdict
from enum import Enum


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AnomalyKind(str, Enum):
    NONE = "NONE"
    ELEVATED_BLOCK_RATE = "ELEVATED_BLOCK_RATE"
    DISTRIBUTED_ATTACK = "DISTRIBUTED_ATTACK"


@dataclass
class AnomalyReport:
    """Classification of one time window of audit events."""
    window_start: datetime
    window_end: datetime
    total_attempts: int
    blocked_attempts: int
    block_rate: float
    unique_source_count: int
    severity: Severity
    kind: AnomalyKind
    recommendation: str
    top_destination: Optional[str] = None
    median_gap_seconds: Optional[float] = None

    @property
    def is_alert(self) -> bool:
        return self.severity != Severity.INFO

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['window_start'] = self.window_start.isoformat()
        d['window_end'] = self.window_end.isoformat()
        d['severity'] = self.severity.value
        d['kind'] = self.kind.value
        return d


@dataclass
class HealthMetrics:
    """Signup/verification health over a lookback period."""
    period_hours: float
    total: int
    successful: int
    blocked: int
    block_rate: float


@dataclass
class RetryableDestination:
    """A destination whose blocks have aged out and may be retried."""
    destination: str
    blocked_attempts: int
    last_blocked_at: datetime
    hours_since_last_block: float


class RateLimitStatus(str, Enum):
    """Estimated state of the rate limit that blocked a destination."""
    STILL_ACTIVE = "still_active"
    EXPIRING_SOON = "expiring_soon"
    LIKELY_EXPIRED = "likely_expired"


@dataclass
class RecentBlockedDestination:
    """Blocked attempts for one destination in the recent window."""
    destination: str
    blocked_attempts: int
    first_blocked_at: datetime
    last_blocked_at: datetime
    minutes_since_last_block: float
    actions: List[str]
    rate_limit_status: RateLimitStatus


@dataclass
class LegitimateBlockedCandidate:
    """
    A blocked destination that looks like a real user hitting the limiter.

    Few attempts, few sources and a plausible address; worth a manual
    unblock or a nudge to retry.
    """
    destination: str
    blocked_attempts: int
    last_blocked_at: datetime
    hours_since_last_block: float
    unique_source_count: int
    has_succeeded: bool


class InvestigationConclusion(str, Enum):
    BLOCKED_ONLY = "blocked_only"
    EVENTUALLY_SUCCEEDED = "eventually_succeeded"
    ACCOUNT_WITHOUT_PROFILE = "account_without_profile"
    UNKNOWN = "unknown"


@dataclass
class ActorInvestigation:
    """What happened to one actor whose attempts were blocked."""
    actor_ref: str
    destination: Optional[str]
    total_events: int
    blocked_attempts: int
    has_succeeded: bool
    has_profile: bool
    conclusion: InvestigationConclusion
