"""Tests for TwilioMessageChannel: WhatsApp first, SMS fallback."""

from urllib.parse import parse_qs

import httpx
import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ridebooking.channels.base import LoggingChannel
from ridebooking.channels.twilio_channel import TwilioMessageChannel


def _channel(handler, sms_from="+15550001111", whatsapp_from="+15552223333"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TwilioMessageChannel(
        account_sid="AC123",
        auth_token="secret",
        sms_from=sms_from,
        whatsapp_from=whatsapp_from,
        client=client,
    )


class Recorder:
    """MockTransport handler answering with queued status codes."""

    def __init__(self, *statuses):
        self.statuses = list(statuses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 201
        if status == 201:
            return httpx.Response(201, json={"sid": f"SM{len(self.requests)}"})
        return httpx.Response(status, json={"message": "rejected"})

    def form(self, index: int) -> dict[str, str]:
        parsed = parse_qs(self.requests[index].content.decode())
        return {k: v[0] for k, v in parsed.items()}


class TestTwilioMessageChannel:
    def test_requires_credentials(self, monkeypatch):
        monkeypatch.setattr("ridebooking.channels.twilio_channel.settings.twilio_account_sid", "")
        with pytest.raises(ValueError):
            TwilioMessageChannel(auth_token="secret")

    @pytest.mark.asyncio
    async def test_whatsapp_first(self):
        recorder = Recorder(201)
        channel = _channel(recorder)

        result = await channel.send("+923001234567", "Your ride is confirmed")

        assert result.delivered
        assert result.transport == "whatsapp"
        assert result.message_id == "SM1"
        assert len(recorder.requests) == 1
        request = recorder.requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["authorization"].startswith("Basic ")
        form = recorder.form(0)
        assert form["From"] == "whatsapp:+15552223333"
        assert form["To"] == "whatsapp:+923001234567"
        assert form["Body"] == "Your ride is confirmed"

    @pytest.mark.asyncio
    async def test_falls_back_to_sms(self):
        recorder = Recorder(400, 201)
        channel = _channel(recorder)

        result = await channel.send("+923001234567", "hello")

        assert result.delivered
        assert result.transport == "sms"
        assert recorder.form(1)["From"] == "+15550001111"
        assert recorder.form(1)["To"] == "+923001234567"

    @pytest.mark.asyncio
    async def test_sms_only(self):
        recorder = Recorder(201)
        channel = _channel(recorder, whatsapp_from="")

        result = await channel.send("+923001234567", "hello")

        assert result.transport == "sms"
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_both_fail(self):
        recorder = Recorder(500, 500)
        channel = _channel(recorder)

        result = await channel.send("+923001234567", "hello")

        assert not result.delivered
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_network_error_reported(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        channel = _channel(handler, sms_from="")

        result = await channel.send("+923001234567", "hello")

        assert not result.delivered
        assert "unreachable" in result.error

    @pytest.mark.asyncio
    async def test_no_sender_configured(self):
        channel = _channel(Recorder(), sms_from="", whatsapp_from="")
        result = await channel.send("+923001234567", "hello")
        assert not result.delivered


class TestLoggingChannel:
    @pytest.mark.asyncio
    async def test_records(self):
        channel = LoggingChannel()
        result = await channel.send("+923001234567", "hello")
        assert result.delivered
        assert channel.sent == [("+923001234567", "hello")]
