"""
Twilio Dispatcher
=================
SMS and WhatsApp delivery through the Twilio Messages API.
"""

import httpx
from typing import Optional, Dict, Any
from base64 import b64encode
import structlog

from authlife_core.config import TwilioConfig
from authlife_core.logging import mask_destination
from authlife_core.otp.destinations import format_for_channel
from authlife_core.otp.models import Channel
from .base import DeliveryDispatcher, DeliveryError, DeliveryReceipt

logger = structlog.get_logger(__name__)


class TwilioDispatcher(DeliveryDispatcher):
    """
    Twilio SMS/WhatsApp dispatcher.

    Sender resolution:
    - messaging service SID when configured (both channels)
    - otherwise the WhatsApp sender, falling back to the phone number
    """

    name = "twilio"

    def __init__(
        self,
        config: TwilioConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.base_url = (
            f"https://api.twilio.com/2010-04-01/Accounts/{config.account_sid}"
        )
        self._client = client
        self._owns_client = client is None

    async def initialize(self) -> None:
        """Create HTTP client with auth."""
        if self._client is None:
            auth = b64encode(
                f"{self.config.account_sid}:{self.config.auth_token}".encode()
            ).decode()
            self._client = httpx.AsyncClient(
                headers={"Authorization": f"Basic {auth}"},
                timeout=self.config.timeout,
            )
            self._owns_client = True
        await super().initialize()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
        await super().close()

    def _sender(self, channel: Channel) -> Dict[str, str]:
        if self.config.messaging_service_sid:
            return {"MessagingServiceSid": self.config.messaging_service_sid}

        if channel == Channel.WHATSAPP:
            sender = self.config.whatsapp_from or self.config.phone_number
            if not sender:
                raise DeliveryError(
                    "Missing Twilio WhatsApp sender configuration", transient=False
                )
            if not sender.startswith("whatsapp:"):
                sender = format_for_channel(sender, Channel.WHATSAPP)
            return {"From": sender}

        if not self.config.phone_number:
            raise DeliveryError(
                "Missing Twilio SMS sender configuration", transient=False
            )
        return {"From": self.config.phone_number}

    async def send(self, destination: str, channel: Channel, body: str) -> DeliveryReceipt:
        """Send an SMS or WhatsApp message via Twilio."""
        if not self._client:
            raise RuntimeError("Dispatcher not initialized")

        payload = {
            "To": format_for_channel(destination, channel),
            "Body": body,
            **self._sender(channel),
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/Messages.json",
                data=payload,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Twilio send failed",
                destination=mask_destination(destination),
                error=str(e),
            )
            raise DeliveryError(f"Twilio unreachable: {e}", transient=True) from e

        if response.status_code in (200, 201):
            data = response.json()
            sid = data.get("sid")
            if not sid:
                logger.error(
                    "Twilio response missing message SID",
                    channel=channel.value,
                    status_code=response.status_code,
                )
                raise DeliveryError("Twilio response missing message SID", transient=False)

            logger.info(
                "Twilio message accepted",
                channel=channel.value,
                sid=sid,
                status=data.get("status"),
            )
            return DeliveryReceipt(
                delivery_id=sid,
                channel=channel,
                raw_response=data,
            )

        error_data = self._error_body(response)
        transient = response.status_code == 429 or response.status_code >= 500
        logger.warning(
            "Twilio rejected message",
            channel=channel.value,
            status_code=response.status_code,
            error_code=error_data.get("code"),
            transient=transient,
        )
        raise DeliveryError(
            error_data.get("message", "Unknown error"),
            transient=transient,
            error_code=str(error_data.get("code", response.status_code)),
        )

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"message": response.text or f"HTTP {response.status_code}"}
        return data if isinstance(data, dict) else {"message": str(data)}
