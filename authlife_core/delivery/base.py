"""
Delivery Dispatcher Interface
=============================
The single outbound-messaging boundary for OTP codes.

Dispatchers are stateless and never retry; retrying is a caller decision
because blind retries would bypass rate limiting.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import structlog

from authlife_core.otp.models import Channel

logger = structlog.get_logger(__name__)


class DeliveryError(Exception):
    """Raised when a message could not be handed to the transport."""

    def __init__(
        self,
        message: str,
        transient: bool = True,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.transient = transient
        self.error_code = error_code


@dataclass
class DeliveryReceipt:
    """Result of a successful send."""
    delivery_id: str
    channel: Channel
    accepted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_response: Optional[Dict[str, Any]] = None


class DeliveryDispatcher(ABC):
    """
    Abstract base class for SMS/WhatsApp transports.

    Implementations receive canonical E.164 destinations and apply their own
    channel formatting.
    """

    name: str = "base"

    async def initialize(self) -> None:
        """Initialize the dispatcher (e.g., create HTTP clients)."""
        logger.info("Delivery dispatcher initialized", dispatcher=self.name)

    async def close(self) -> None:
        """Clean up resources (e.g., close HTTP clients)."""
        logger.info("Delivery dispatcher closed", dispatcher=self.name)

    @abstractmethod
    async def send(self, destination: str, channel: Channel, body: str) -> DeliveryReceipt:
        """
        Send a message.

        Args:
            destination: Canonical E.164 destination
            channel: SMS or WhatsApp
            body: Message content

        Returns:
            DeliveryReceipt with the transport's delivery id

        Raises:
            DeliveryError: transient or permanent failure
        """
        pass
