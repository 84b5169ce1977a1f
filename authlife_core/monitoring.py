"""
Monitoring Router
=================
Admin dashboard endpoints for authentication health, anomalies and
rate-limit state.
"""

import re
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from pydantic import BaseModel
import structlog

from authlife_core.audit import AnomalyDetector
from authlife_core.errors import ValidationError
from authlife_core.metrics import get_metrics_content_type, get_metrics_text
from authlife_core.otp import Channel, canonicalize_destination
from authlife_core.rate_limit import RateLimitSurface

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class HealthMetricsResponse(BaseModel):
    period_hours: float
    total: int
    successful: int
    blocked: int
    block_rate: float


class AnomalyReportResponse(BaseModel):
    window_start: datetime
    window_end: datetime
    total_attempts: int
    blocked_attempts: int
    block_rate: float
    unique_source_count: int
    severity: str
    kind: str
    recommendation: str
    top_destination: Optional[str] = None
    median_gap_seconds: Optional[float] = None


class RetryableDestinationResponse(BaseModel):
    destination: str
    blocked_attempts: int
    last_blocked_at: datetime
    hours_since_last_block: float


class RecentBlockedResponse(BaseModel):
    destination: str
    blocked_attempts: int
    first_blocked_at: datetime
    last_blocked_at: datetime
    minutes_since_last_block: float
    actions: List[str]
    rate_limit_status: str


class LegitimateBlockedResponse(BaseModel):
    destination: str
    blocked_attempts: int
    last_blocked_at: datetime
    hours_since_last_block: float
    unique_source_count: int
    has_succeeded: bool


class ActorInvestigationResponse(BaseModel):
    actor_ref: str
    destination: Optional[str] = None
    total_events: int
    blocked_attempts: int
    has_succeeded: bool
    has_profile: bool
    conclusion: str


class RateLimitedResponse(BaseModel):
    destination: str
    rate_limited: bool


class AuditEventResponse(BaseModel):
    id: str
    action: str
    actor_ref: Optional[str] = None
    destination: Optional[str] = None
    source_ip: Optional[str] = None
    created_at: Optional[datetime] = None
    blocked: Optional[bool] = None


def normalize_lookup_destination(destination: str) -> str:
    """
    Normalize a phone number or e-mail address for audit lookups.

    Raises:
        HTTPException: 422 if it is neither
    """
    value = (destination or "").strip()
    if "@" in value:
        if not EMAIL_PATTERN.match(value):
            raise HTTPException(status_code=422, detail="Invalid e-mail address")
        return value.lower()
    try:
        return canonicalize_destination(value, Channel.SMS)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


def create_monitoring_router(
    detector: AnomalyDetector,
    rate_limits: RateLimitSurface,
    prefix: str = "/auth-monitoring",
) -> APIRouter:
    """
    Create the monitoring router.

    Args:
        detector: Anomaly detector over the audit log
        rate_limits: Rate-limit read surface
        prefix: URL prefix

    Returns:
        FastAPI router
    """
    router = APIRouter(prefix=prefix, tags=["Auth Monitoring"])

    @router.get("/health", response_model=HealthMetricsResponse)
    async def health_metrics(hours: float = Query(24, gt=0, le=24 * 30)):
        """Signup and verification health for the lookback period."""
        metrics = await detector.get_health_metrics(hours)
        return HealthMetricsResponse(**vars(metrics))

    @router.get("/anomalies", response_model=List[AnomalyReportResponse])
    async def anomalies(hours: float = Query(1, gt=0, le=24 * 7)):
        reports = await detector.detect_anomalies(hours)
        return [AnomalyReportResponse(**r.to_dict()) for r in reports]

    @router.get("/retry-safe", response_model=List[RetryableDestinationResponse])
    async def retry_safe(hours: float = Query(24, gt=0, le=24 * 30)):
        """Blocked destinations whose last block is old enough to retry."""
        found = await detector.find_retry_safe_destinations(hours)
        return [RetryableDestinationResponse(**vars(r)) for r in found]

    @router.get("/recent-blocked", response_model=List[RecentBlockedResponse])
    async def recent_blocked(hours: float = Query(24, gt=0, le=24 * 7)):
        """Blocked destinations with an estimate of whether their limit has reset."""
        found = await detector.find_recent_blocked(hours)
        return [
            RecentBlockedResponse(**{**vars(r), "rate_limit_status": r.rate_limit_status.value})
            for r in found
        ]

    @router.get("/legitimate-blocked", response_model=List[LegitimateBlockedResponse])
    async def legitimate_blocked(hours: float = Query(168, gt=0, le=24 * 30)):
        """Blocked destinations that look like real users."""
        found = await detector.find_potentially_legitimate_blocked(hours)
        return [LegitimateBlockedResponse(**vars(c)) for c in found]

    @router.get("/investigate/{actor_ref}", response_model=ActorInvestigationResponse)
    async def investigate(actor_ref: str):
        findings = await detector.investigate_blocked_actor(actor_ref)
        if findings is None:
            raise HTTPException(status_code=404, detail="No events recorded for actor")
        return ActorInvestigationResponse(
            **{**vars(findings), "conclusion": findings.conclusion.value}
        )

    @router.get("/rate-limited", response_model=RateLimitedResponse)
    async def rate_limited(
        destination: str = Query(..., min_length=1),
        within_hours: float = Query(2, gt=0, le=24 * 7),
    ):
        normalized = normalize_lookup_destination(destination)
        limited = await rate_limits.is_rate_limited(normalized, within_hours)
        return RateLimitedResponse(destination=normalized, rate_limited=limited)

    @router.get("/blocked-history", response_model=List[AuditEventResponse])
    async def blocked_history(
        destination: str = Query(..., min_length=1),
        limit: int = Query(50, ge=1, le=500),
    ):
        normalized = normalize_lookup_destination(destination)
        events = await rate_limits.get_blocked_history(normalized, limit)
        return [AuditEventResponse(**e.to_dict()) for e in events]

    @router.get("/metrics")
    async def metrics():
        """Prometheus exposition of engine counters."""
        return Response(content=get_metrics_text(), media_type=get_metrics_content_type())

    return router
