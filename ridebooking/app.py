"""FastAPI application: booking API and the Twilio messaging webhook.

Endpoints:

  POST /rides                        Submit a booking request
  GET  /rides/{ride_id}              Ride status
  POST /webhook/messages             Twilio WhatsApp/SMS webhook, replies with TwiML
  POST /conversations/{phone}/reset  Retire a rider's conversation (admin)
  GET  /stats                        Ride counts and active conversations (admin)
  GET  /health                       Health check

The messaging flow:
  1. Rider texts the WhatsApp/SMS number, Twilio POSTs the form to /webhook/messages
  2. A shared location is reverse-geocoded into an address
  3. ConversationMachine handles the turn
  4. The reply goes back as TwiML <Message>
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import time
from datetime import datetime
from typing import Optional
from xml.etree.ElementTree import Element, SubElement, tostring

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ridebooking.auth import require_admin_token
from ridebooking.config import settings
from ridebooking.errors import BookingValidationError
from ridebooking.external import call_external
from ridebooking.phone import normalize_phone, redact_pii
from ridebooking.services import Services, build_services_from_settings
from ridebooking.timeutil import now_utc

log = logging.getLogger("ridebooking.app")

_START_TIME = time.time()


class RideRequestBody(BaseModel):
    driver_phone: str
    rider_phone: str
    pickup: str
    destination: str
    time: Optional[datetime] = None
    estimated_duration: Optional[int] = None


def twiml_message(text: str) -> str:
    response_el = Element("Response")
    if text:
        message_el = SubElement(response_el, "Message")
        message_el.text = text
    return tostring(response_el, encoding="unicode", xml_declaration=True)


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    for warning in settings.validate_startup():
        log.warning("Config: %s", warning)

    services = services or build_services_from_settings()

    app = FastAPI(
        title="Ride Booking Engine",
        description="Ride booking over WhatsApp/SMS with conflict detection and driver assignment",
        version="0.1.0",
    )
    app.state.services = services

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check: confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Booking API ────────────────────────────────────────────

    @app.post("/rides")
    async def submit_ride(body: RideRequestBody) -> JSONResponse:
        try:
            outcome = await services.orchestrator.book(
                body.driver_phone,
                body.rider_phone,
                body.pickup,
                body.destination,
                body.time,
                estimated_duration=body.estimated_duration,
            )
        except BookingValidationError as e:
            return JSONResponse({"error": str(e), "field": e.field}, status_code=400)
        return JSONResponse(outcome.model_dump(mode="json"))

    @app.get("/rides/{ride_id}")
    async def ride_status(ride_id: str) -> JSONResponse:
        ride = await services.orchestrator.get_ride_status(ride_id)
        if ride is None:
            return JSONResponse({"error": "Ride not found"}, status_code=404)
        return JSONResponse(ride.model_dump(mode="json"))

    # ── Twilio messaging webhook ───────────────────────────────

    @app.post("/webhook/messages")
    async def inbound_message(request: Request) -> Response:
        """Twilio webhook for inbound WhatsApp/SMS messages."""
        form = await request.form()
        sender = str(form.get("From", ""))
        body = str(form.get("Body", "")).strip()
        latitude = form.get("Latitude")
        longitude = form.get("Longitude")

        phone = normalize_phone(sender)
        if not phone:
            return JSONResponse({"error": "Missing sender"}, status_code=400)

        if latitude and longitude:
            body = await _location_text(services, float(latitude), float(longitude))

        log.info("Inbound message from %s", redact_pii(phone))
        reply = await services.machine.handle_message(phone, body)
        return Response(content=twiml_message(reply), media_type="application/xml")

    # ── Admin ──────────────────────────────────────────────────

    @app.post("/conversations/{phone}/reset", dependencies=[Depends(require_admin_token)])
    async def reset_conversation(phone: str) -> JSONResponse:
        conversation = await services.machine.reset(normalize_phone(phone))
        return JSONResponse({"phone": conversation.phone, "step": conversation.step.value})

    @app.get("/stats", dependencies=[Depends(require_admin_token)])
    async def stats() -> JSONResponse:
        return JSONResponse({
            "rides": await services.rides.count_by_status(),
            "active_conversations": await services.conversations.count_active(now_utc()),
        })

    return app


# ── Helper functions ──────────────────────────────────────────────

async def _location_text(services: Services, lat: float, lng: float) -> str:
    """Turn a shared location into an address, or plain coordinates."""
    fallback = f"{lat:.6f},{lng:.6f}"
    if services.maps is None:
        return fallback
    maps = services.maps
    try:
        result = await call_external(
            "maps.reverse_geocode", lambda: maps.reverse_geocode(lat, lng)
        )
    except Exception as e:
        log.warning("Reverse geocoding failed: %s", e)
        return fallback
    return result.formatted_address if result else fallback


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "ridebooking.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
