"""
Audit Recorder
==============
Records OTP lifecycle outcomes without ever failing the caller.
"""

from datetime import datetime
from typing import Callable, Optional
import structlog

from authlife_core.database import utcnow
from authlife_core.errors import StorageError
from authlife_core.logging import mask_destination
from .event_types import AuditAction
from .models import AuditEvent
from .store import AuditEventStore

logger = structlog.get_logger(__name__)


class AuditRecorder:
    """High-level audit interface used by the OTP manager."""

    def __init__(
        self,
        store: AuditEventStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.clock = clock

    async def record(
        self,
        action: AuditAction,
        actor_ref: Optional[str] = None,
        destination: Optional[str] = None,
        source_ip: Optional[str] = None,
        blocked: bool = False,
    ) -> Optional[AuditEvent]:
        """
        Append an audit event.

        Returns:
            The stored event, or None if it could not be written
        """
        try:
            event = await self.store.append(
                action,
                created_at=self.clock(),
                actor_ref=actor_ref,
                destination=destination,
                source_ip=source_ip,
                blocked=blocked,
            )
        except StorageError as e:
            logger.error(
                "Audit event not recorded",
                action=action.value,
                destination=mask_destination(destination),
                error=e.message,
                code=e.code,
            )
            return None

        logger.debug(
            "Audit event logged",
            event_id=event.id,
            action=action.value,
            blocked=blocked,
        )
        return event
