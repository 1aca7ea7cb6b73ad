"""TwilioMessageChannel: WhatsApp/SMS delivery through the Twilio REST API.

Messages are posted to the Messages resource with HTTP basic auth::

  POST https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json
       From=whatsapp:+1...  To=whatsapp:+92...  Body=...

WhatsApp is tried first when a WhatsApp sender is configured; on failure
the same text goes out as SMS.
"""

from __future__ import annotations

import logging

import httpx

from ridebooking.config import settings
from ridebooking.phone import redact_pii

from .base import DeliveryResult, MessageChannel

log = logging.getLogger("ridebooking.twilio")

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioMessageChannel(MessageChannel):
    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        sms_from: str | None = None,
        whatsapp_from: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._account_sid = account_sid or settings.twilio_account_sid
        self._auth_token = auth_token or settings.twilio_auth_token
        self._sms_from = sms_from if sms_from is not None else settings.twilio_phone_number
        self._whatsapp_from = (
            whatsapp_from if whatsapp_from is not None else settings.twilio_whatsapp_number
        )
        if not self._account_sid or not self._auth_token:
            raise ValueError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set.")
        self._client = client or httpx.AsyncClient(timeout=15)

    @property
    def _messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, sender: str, destination: str, text: str, transport: str) -> DeliveryResult:
        try:
            resp = await self._client.post(
                self._messages_url,
                data={"From": sender, "To": destination, "Body": text},
                auth=(self._account_sid, self._auth_token),
            )
        except httpx.HTTPError as e:
            log.error("Twilio %s request failed: %s", transport, e)
            return DeliveryResult(delivered=False, transport=transport, error=str(e))

        if resp.status_code != 201:
            log.error(
                "Twilio %s send failed (%d): %s", transport, resp.status_code, resp.text[:200]
            )
            return DeliveryResult(
                delivered=False, transport=transport, error=f"HTTP {resp.status_code}"
            )

        sid = resp.json().get("sid", "")
        log.info("Sent %s message %s to %s", transport, sid, redact_pii(destination))
        return DeliveryResult(delivered=True, transport=transport, message_id=sid)

    async def send(self, destination: str, text: str) -> DeliveryResult:
        if self._whatsapp_from:
            result = await self._post(
                f"whatsapp:{self._whatsapp_from}", f"whatsapp:{destination}", text, "whatsapp"
            )
            if result.delivered or not self._sms_from:
                return result
            log.info("WhatsApp delivery failed, falling back to SMS")

        if not self._sms_from:
            return DeliveryResult(delivered=False, error="no sender number configured")
        return await self._post(self._sms_from, destination, text, "sms")
