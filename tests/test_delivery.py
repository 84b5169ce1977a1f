"""
Tests for Delivery Dispatchers
==============================
Twilio request shape and error classification via httpx.MockTransport.
"""

from urllib.parse import parse_qs

import httpx
import pytest

PHONE = "+260971234567"


def make_dispatcher(handler, **config_overrides):
    from authlife_core.config import TwilioConfig
    from authlife_core.delivery import TwilioDispatcher

    settings = {
        "account_sid": "AC123",
        "auth_token": "secret",
        "phone_number": "+15005550006",
        "whatsapp_from": "+14155238886",
    }
    settings.update(config_overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TwilioDispatcher(TwilioConfig(**settings), client=client)


class TestTwilioDispatcher:
    """Tests for the Twilio transport."""

    @pytest.mark.asyncio
    async def test_sms_send(self):
        """Should post To/From/Body and return the message SID."""
        from authlife_core.otp import Channel

        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

        dispatcher = make_dispatcher(handler)
        receipt = await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert receipt.delivery_id == "SM123"
        assert captured["url"].endswith("/Accounts/AC123/Messages.json")
        assert captured["form"]["To"] == [PHONE]
        assert captured["form"]["From"] == ["+15005550006"]
        assert captured["form"]["Body"] == ["hello"]

    @pytest.mark.asyncio
    async def test_whatsapp_formatting(self):
        from authlife_core.otp import Channel

        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "SM456"})

        dispatcher = make_dispatcher(handler)
        await dispatcher.send(PHONE, Channel.WHATSAPP, "hello")

        assert captured["form"]["To"] == ["whatsapp:+260971234567"]
        assert captured["form"]["From"] == ["whatsapp:+14155238886"]

    @pytest.mark.asyncio
    async def test_messaging_service_takes_precedence(self):
        from authlife_core.otp import Channel

        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "SM789"})

        dispatcher = make_dispatcher(handler, messaging_service_sid="MG999")
        await dispatcher.send(PHONE, Channel.WHATSAPP, "hello")

        assert captured["form"]["MessagingServiceSid"] == ["MG999"]
        assert "From" not in captured["form"]

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        from authlife_core.delivery import DeliveryError
        from authlife_core.otp import Channel

        dispatcher = make_dispatcher(
            lambda request: httpx.Response(503, json={"code": 20503, "message": "busy"})
        )

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self):
        from authlife_core.delivery import DeliveryError
        from authlife_core.otp import Channel

        dispatcher = make_dispatcher(
            lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To'"})
        )

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert exc_info.value.transient is False
        assert exc_info.value.error_code == "21211"

    @pytest.mark.asyncio
    async def test_accepted_without_sid_is_permanent(self):
        from authlife_core.delivery import DeliveryError
        from authlife_core.otp import Channel

        dispatcher = make_dispatcher(
            lambda request: httpx.Response(201, json={"status": "queued"})
        )

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert exc_info.value.transient is False

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self):
        from authlife_core.delivery import DeliveryError
        from authlife_core.otp import Channel

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        dispatcher = make_dispatcher(handler)

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert exc_info.value.transient is True

    @pytest.mark.asyncio
    async def test_missing_sender_is_permanent(self):
        from authlife_core.delivery import DeliveryError
        from authlife_core.otp import Channel

        dispatcher = make_dispatcher(
            lambda request: httpx.Response(201, json={"sid": "SM1"}),
            phone_number=None,
            whatsapp_from=None,
        )

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.send(PHONE, Channel.SMS, "hello")

        assert exc_info.value.transient is False


class TestInMemoryDispatcher:
    """Tests for the recording dispatcher."""

    @pytest.mark.asyncio
    async def test_records_messages(self):
        from authlife_core.delivery import InMemoryDispatcher
        from authlife_core.otp import Channel

        dispatcher = InMemoryDispatcher()
        receipt = await dispatcher.send(PHONE, Channel.WHATSAPP, "hi")

        assert dispatcher.last_to(PHONE).delivery_id == receipt.delivery_id
        assert dispatcher.last_to("+260970000000") is None
