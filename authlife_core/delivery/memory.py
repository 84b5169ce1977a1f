"""
In-Memory Dispatcher
====================
Records messages instead of sending them. For development and testing.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
import structlog

from authlife_core.logging import mask_destination
from authlife_core.otp.models import Channel
from .base import DeliveryDispatcher, DeliveryError, DeliveryReceipt

logger = structlog.get_logger(__name__)


@dataclass
class SentMessage:
    """A message captured by the in-memory dispatcher."""
    delivery_id: str
    destination: str
    channel: Channel
    body: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryDispatcher(DeliveryDispatcher):
    """
    Dispatcher that keeps every message in ``sent``.

    ``fail_with`` makes every send raise that error; ``delay`` makes every
    send sleep first, for exercising timeouts.
    """

    name = "memory"

    def __init__(
        self,
        fail_with: Optional[DeliveryError] = None,
        delay: float = 0.0,
    ):
        self.fail_with = fail_with
        self.delay = delay
        self.sent: List[SentMessage] = []

    async def send(self, destination: str, channel: Channel, body: str) -> DeliveryReceipt:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

        message = SentMessage(
            delivery_id=f"mem_{uuid.uuid4().hex[:16]}",
            destination=destination,
            channel=channel,
            body=body,
        )
        self.sent.append(message)
        logger.debug(
            "Message captured",
            destination=mask_destination(destination),
            channel=channel.value,
        )
        return DeliveryReceipt(delivery_id=message.delivery_id, channel=channel)

    def last_to(self, destination: str) -> Optional[SentMessage]:
        """Most recent message sent to ``destination``."""
        for message in reversed(self.sent):
            if message.destination == destination:
                return message
        return None
