"""
Rate Limit Surface
==================
Read-side queries over blocked audit events.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional
import structlog

from authlife_core.audit.models import AuditEvent
from authlife_core.audit.store import AuditEventStore
from authlife_core.config import DetectorConfig
from authlife_core.database import utcnow

logger = structlog.get_logger(__name__)


class RateLimitSurface:
    """Answers "is this destination currently being blocked?"."""

    def __init__(
        self,
        store: AuditEventStore,
        config: Optional[DetectorConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.config = config or DetectorConfig()
        self.clock = clock

    async def is_rate_limited(self, destination: str, within_hours: Optional[float] = None) -> bool:
        """
        True if any blocked event exists for ``destination`` within the lookback.

        Args:
            destination: Canonical destination or e-mail
            within_hours: Lookback (defaults to the configured 2 hours)
        """
        hours = within_hours if within_hours is not None else self.config.rate_limit_lookback_hours
        since = self.clock() - timedelta(hours=hours)
        return await self.store.has_blocked_since(destination, since)

    async def get_blocked_history(self, destination: str, limit: int = 50) -> List[AuditEvent]:
        """Blocked events for ``destination``, newest first."""
        if limit < 1:
            return []
        return await self.store.list_for_destination(destination, limit=limit, blocked_only=True)
