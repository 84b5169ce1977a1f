"""
Anomaly Detector
================
Windowed, read-only classification of authentication audit events.

Classification rules:
- block rate above the critical threshold: CRITICAL / ELEVATED_BLOCK_RATE
- block rate above the warning threshold: WARNING / ELEVATED_BLOCK_RATE
- many distinct sources hammering one destination with sub-second gaps:
  CRITICAL / DISTRIBUTED_ATTACK (overrides the block-rate result)
"""

import re
import statistics
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from authlife_core.config import DetectorConfig
from authlife_core.database import utcnow
from authlife_core.metrics import record_anomaly_report
from .event_types import SUCCESS_ACTIONS
from .models import AuditEvent
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
from .store import AuditEventStore

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")

DISPOSABLE_MARKERS = ("tempmail", "throwaway", "disposable", "guerrillamail", "mailinator")

RECOMMENDATIONS = {
    (Severity.CRITICAL, AnomalyKind.ELEVATED_BLOCK_RATE): (
        "More than 50% of attempts are being blocked. Check for UX issues "
        "causing users to retry, or a potential flood of automated requests."
    ),
    (Severity.WARNING, AnomalyKind.ELEVATED_BLOCK_RATE): (
        "Block rate is elevated. Review recent blocked attempts for patterns."
    ),
    (Severity.CRITICAL, AnomalyKind.DISTRIBUTED_ATTACK): (
        "Many sources are targeting one destination in rapid succession, "
        "which suggests a distributed bot attack. Consider enabling CAPTCHA."
    ),
    (Severity.INFO, AnomalyKind.NONE): "Authentication blocking patterns are normal.",
}


def _block_counts(events: Iterable[AuditEvent]) -> Tuple[int, int]:
    """(total, blocked) over events whose blocked flag is known."""
    total = blocked = 0
    for event in events:
        if event.blocked is None:
            continue
        total += 1
        if event.blocked:
            blocked += 1
    return total, blocked


def _top_destination(events: Iterable[AuditEvent]) -> Tuple[Optional[str], Optional[float]]:
    """Most frequent destination and the median gap between its attempts."""
    by_destination: Dict[str, List[datetime]] = defaultdict(list)
    for event in events:
        if event.destination and event.created_at is not None:
            by_destination[event.destination].append(event.created_at)
    if not by_destination:
        return None, None

    # Ties resolve to the lexically smallest destination
    destination = min(by_destination, key=lambda d: (-len(by_destination[d]), d))
    stamps = sorted(by_destination[destination])
    if len(stamps) < 2:
        return destination, None

    gaps = [(b - a).total_seconds() for a, b in zip(stamps, stamps[1:])]
    return destination, statistics.median(gaps)


def classify_window(
    events: List[AuditEvent],
    window_start: datetime,
    window_end: datetime,
    config: Optional[DetectorConfig] = None,
) -> AnomalyReport:
    """
    Classify one window of events.

    Pure function: no I/O, no clock.

    Args:
        events: Events in the window (any fields may be missing)
        window_start: Inclusive window start
        window_end: Inclusive window end
        config: Thresholds (defaults if omitted)

    Returns:
        AnomalyReport
    """
    config = config or DetectorConfig()

    total, blocked = _block_counts(events)
    block_rate = blocked / total if total else 0.0

    if block_rate > config.critical_block_rate:
        severity, kind = Severity.CRITICAL, AnomalyKind.ELEVATED_BLOCK_RATE
    elif block_rate > config.warning_block_rate:
        severity, kind = Severity.WARNING, AnomalyKind.ELEVATED_BLOCK_RATE
    else:
        severity, kind = Severity.INFO, AnomalyKind.NONE

    unique_sources = len({e.source_ip for e in events if e.source_ip})
    top_destination, median_gap = _top_destination(events)

    if (
        unique_sources > config.fanout_source_threshold
        and median_gap is not None
        and median_gap < config.fanout_median_gap_seconds
    ):
        severity, kind = Severity.CRITICAL, AnomalyKind.DISTRIBUTED_ATTACK

    return AnomalyReport(
        window_start=window_start,
        window_end=window_end,
        total_attempts=total,
        blocked_attempts=blocked,
        block_rate=block_rate,
        unique_source_count=unique_sources,
        severity=severity,
        kind=kind,
        recommendation=RECOMMENDATIONS[(severity, kind)],
        top_destination=top_destination,
        median_gap_seconds=median_gap,
    )


def estimate_rate_limit_status(
    minutes_since_last_block: float,
    config: Optional[DetectorConfig] = None,
) -> RateLimitStatus:
    """Guess whether the limiter that blocked a destination has reset."""
    config = config or DetectorConfig()
    if minutes_since_last_block > config.retry_safe_after_hours * 60:
        return RateLimitStatus.LIKELY_EXPIRED
    if minutes_since_last_block > config.expiring_soon_minutes:
        return RateLimitStatus.EXPIRING_SOON
    return RateLimitStatus.STILL_ACTIVE


def is_plausible_destination(destination: str) -> bool:
    """Well-formed email or E.164 number, not on a throwaway domain."""
    lowered = destination.lower()
    if any(marker in lowered for marker in DISPOSABLE_MARKERS):
        return False
    return bool(EMAIL_PATTERN.match(destination) or PHONE_PATTERN.match(destination))


def _blocked_by_destination(events: Iterable[AuditEvent]) -> Dict[str, List[AuditEvent]]:
    grouped: Dict[str, List[AuditEvent]] = defaultdict(list)
    for event in events:
        if event.destination and event.blocked and event.created_at is not None:
            grouped[event.destination].append(event)
    return grouped


class AnomalyDetector:
    """
    Store-backed detector.

    Read-only over the audit log; safe to run on its own schedule.
    """

    def __init__(
        self,
        store: AuditEventStore,
        config: Optional[DetectorConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config or DetectorConfig()
        self.clock = clock

    async def _window(self, hours: float) -> Tuple[datetime, datetime, List[AuditEvent]]:
        if hours <= 0:
            raise ValueError("hours must be positive")
        end = self.clock()
        start = end - timedelta(hours=hours)
        events = await self.store.list_window(start, end)
        return start, end, events

    async def detect_anomalies(self, hours: float = 1) -> List[AnomalyReport]:
        """
        Classify the last ``hours`` of events.

        Never raises.

        Returns:
            One report for the window, or an empty list if the run failed
        """
        try:
            start, end, events = await self._window(hours)
            report = classify_window(events, start, end, self.config)
        except Exception as e:
            logger.error(
                "Anomaly detection failed",
                hours=hours,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        record_anomaly_report(report.severity.value, report.kind.value)

        log = logger.warning if report.is_alert else logger.info
        log(
            "Anomaly window classified",
            severity=report.severity.value,
            kind=report.kind.value,
            total=report.total_attempts,
            blocked=report.blocked_attempts,
            block_rate=round(report.block_rate, 4),
            unique_sources=report.unique_source_count,
        )
        return [report]

    async def get_health_metrics(self, hours: float = 24) -> HealthMetrics:
        """Success and block counts for the last ``hours``."""
        _, _, events = await self._window(hours)
        total, blocked = _block_counts(events)
        successful = sum(
            1 for e in events
            if e.blocked is False and e.action in SUCCESS_ACTIONS
        )
        return HealthMetrics(
            period_hours=hours,
            total=total,
            successful=successful,
            blocked=blocked,
            block_rate=blocked / total if total else 0.0,
        )

    async def find_retry_safe_destinations(self, hours: float = 24) -> List[RetryableDestination]:
        """
        Destinations blocked in the window that never got through, at any
        time, and whose last block is old enough to allow another try.
        """
        _, end, events = await self._window(hours)
        grouped = _blocked_by_destination(events)
        succeeded = await self.store.destinations_with_success(grouped)

        results = []
        for destination, blocked in grouped.items():
            if destination in succeeded:
                continue
            last_blocked_at = max(e.created_at for e in blocked)
            hours_since = (end - last_blocked_at).total_seconds() / 3600
            if hours_since > self.config.retry_safe_after_hours:
                results.append(RetryableDestination(
                    destination=destination,
                    blocked_attempts=len(blocked),
                    last_blocked_at=last_blocked_at,
                    hours_since_last_block=hours_since,
                ))

        results.sort(key=lambda r: r.last_blocked_at, reverse=True)
        return results

    async def find_recent_blocked(self, hours: float = 24) -> List[RecentBlockedDestination]:
        """Blocked destinations in the window with an estimated limiter state."""
        _, end, events = await self._window(hours)

        results = []
        for destination, blocked in _blocked_by_destination(events).items():
            stamps = [e.created_at for e in blocked]
            minutes_since = (end - max(stamps)).total_seconds() / 60
            results.append(RecentBlockedDestination(
                destination=destination,
                blocked_attempts=len(blocked),
                first_blocked_at=min(stamps),
                last_blocked_at=max(stamps),
                minutes_since_last_block=minutes_since,
                actions=sorted({e.action.value for e in blocked}),
                rate_limit_status=estimate_rate_limit_status(minutes_since, self.config),
            ))

        results.sort(key=lambda r: r.last_blocked_at, reverse=True)
        return results

    async def find_potentially_legitimate_blocked(
        self, hours: float = 168
    ) -> List[LegitimateBlockedCandidate]:
        """
        Blocked destinations that look like real users rather than bots.

        Keeps destinations with a moderate number of blocked attempts from
        a handful of sources, whose address is well formed and not on a
        disposable domain.
        """
        _, end, events = await self._window(hours)
        grouped = _blocked_by_destination(events)
        succeeded = await self.store.destinations_with_success(grouped)

        results = []
        for destination, blocked in grouped.items():
            if not (
                self.config.legit_min_attempts
                <= len(blocked)
                <= self.config.legit_max_attempts
            ):
                continue
            sources = {e.source_ip for e in blocked if e.source_ip}
            if len(sources) > self.config.legit_max_sources:
                continue
            if not is_plausible_destination(destination):
                continue

            last_blocked_at = max(e.created_at for e in blocked)
            results.append(LegitimateBlockedCandidate(
                destination=destination,
                blocked_attempts=len(blocked),
                last_blocked_at=last_blocked_at,
                hours_since_last_block=(end - last_blocked_at).total_seconds() / 3600,
                unique_source_count=len(sources),
                has_succeeded=destination in succeeded,
            ))

        results.sort(key=lambda r: r.last_blocked_at, reverse=True)
        return results

    async def investigate_blocked_actor(self, actor_ref: str) -> Optional[ActorInvestigation]:
        """
        Summarize one actor's history.

        Returns:
            None if nothing was ever recorded for the actor
        """
        events = await self.store.list_for_actor(actor_ref)
        if not events:
            return None

        destination = next((e.destination for e in events if e.destination), None)
        blocked = sum(1 for e in events if e.blocked)
        has_succeeded = any(e.blocked is False for e in events)
        if not has_succeeded and destination:
            has_succeeded = bool(await self.store.destinations_with_success([destination]))
        has_profile = await self.store.has_profile(actor_ref)

        if not has_succeeded and not has_profile:
            conclusion = InvestigationConclusion.BLOCKED_ONLY
        elif has_succeeded and has_profile:
            conclusion = InvestigationConclusion.EVENTUALLY_SUCCEEDED
        elif has_succeeded:
            conclusion = InvestigationConclusion.ACCOUNT_WITHOUT_PROFILE
        else:
            conclusion = InvestigationConclusion.UNKNOWN

        logger.info(
            "Investigated blocked actor",
            actor_ref=actor_ref,
            blocked=blocked,
            conclusion=conclusion.value,
        )
        return ActorInvestigation(
            actor_ref=actor_ref,
            destination=destination,
            total_events=len(events),
            blocked_attempts=blocked,
            has_succeeded=has_succeeded,
            has_profile=has_profile,
            conclusion=conclusion,
        )
