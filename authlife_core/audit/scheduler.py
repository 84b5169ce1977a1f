"""
Detection Scheduler
===================
Runs the anomaly detector on a fixed interval.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional
import structlog

from .detector import AnomalyDetector
from .reports import AnomalyReport

logger = structlog.get_logger(__name__)

AlertSink = Callable[[AnomalyReport], Awaitable[None]]


class DetectionScheduler:
    """
    Periodic detector runner.

    WARNING and CRITICAL reports are handed to ``alert_sink``.
    """

    def __init__(
        self,
        detector: AnomalyDetector,
        interval_seconds: float = 300,
        hours: float = 1,
        alert_sink: Optional[AlertSink] = None,
    ):
        self.detector = detector
        self.interval_seconds = interval_seconds
        self.hours = hours
        self.alert_sink = alert_sink
        self._stopped = asyncio.Event()

    async def run_once(self) -> List[AnomalyReport]:
        reports = await self.detector.detect_anomalies(self.hours)
        if self.alert_sink is None:
            return reports

        for report in reports:
            if not report.is_alert:
                continue
            try:
                await self.alert_sink(report)
            except Exception as e:
                logger.error(
                    "Alert sink failed",
                    severity=report.severity.value,
                    kind=report.kind.value,
                    error=str(e),
                )
        return reports

    async def run_forever(self) -> None:
        """Run until ``stop()`` is called or the task is cancelled."""
        logger.info(
            "Detection scheduler started",
            interval_seconds=self.interval_seconds,
            hours=self.hours,
        )
        while not self._stopped.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Detection run failed", error=str(e), error_type=type(e).__name__)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Detection scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
