"""Twilio Voice integration.

This module provides:
- Outbound call endpoint that dials a number through the Twilio REST API.
- Voice webhook (TwiML) that greets the caller and connects a bidirectional media stream.
- Call status webhook.
- The media stream WebSocket served by a per-connection RelaySession.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, WebSocket, WebSocketDisconnect

from api.dependencies import RelayFactory, get_relay_factory
from api.schemas import OutboundCallRequest, OutboundCallResponse
from config.settings import get_settings
from integrations.twilio_client import build_twilio_client, get_twilio_config
from integrations.twilio_streaming import TwilioMediaChannel

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_connect_stream(*, greeting: str, voice: str, stream_url: str) -> str:
    say = escape(greeting)
    stream = escape(stream_url)
    voice_attr = escape(voice, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say voice=\"{voice_attr}\">{say}</Say>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return _to_ws_url(f"{settings.public_base_url.rstrip('/')}/api/twilio/media-stream")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return _to_ws_url(str(request.url_for("twilio_media_stream")))


@router.post("/voice")
async def twilio_voice_webhook(request: Request) -> Response:
    settings = get_settings()
    return _twiml_response(
        _twiml_connect_stream(
            greeting=settings.twilio_greeting,
            voice=settings.twilio_say_voice,
            stream_url=_stream_url(request),
        )
    )


@router.post("/status", status_code=204)
async def twilio_call_status(request: Request) -> Response:
    form = await request.form()
    LOGGER.info("Call status: %s %s", form.get("CallSid"), form.get("CallStatus"))
    return Response(status_code=204)


@router.websocket("/media-stream")
async def twilio_media_stream(
    websocket: WebSocket,
    relay_factory: RelayFactory = Depends(get_relay_factory),
) -> None:
    await websocket.accept()
    LOGGER.info("Twilio connected to media stream")
    relay = relay_factory(TwilioMediaChannel(websocket))
    try:
        while not relay.closed:
            message = await websocket.receive_text()
            await relay.handle_message(message)
    except WebSocketDisconnect:
        LOGGER.info("Media stream WebSocket closed by Twilio")
    finally:
        await relay.close()


def require_calls_api_key(x_api_key: Annotated[str | None, Header()] = None) -> None:
    settings = get_settings()
    if settings.twilio_calls_api_key and x_api_key != settings.twilio_calls_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_twilio_client():
    return build_twilio_client()


def get_twilio_cfg():
    return get_twilio_config()


@router.post("/calls", response_model=OutboundCallResponse)
async def create_outbound_call(
    payload: OutboundCallRequest,
    _authorized: None = Depends(require_calls_api_key),
    twilio_client=Depends(get_twilio_client),
    cfg=Depends(get_twilio_cfg),
) -> OutboundCallResponse:
    to_number = payload.to_number or cfg.default_to_number
    if not to_number:
        raise HTTPException(status_code=422, detail="No destination number given or configured")

    call = await asyncio.to_thread(
        twilio_client.calls.create,
        to=to_number,
        from_=cfg.from_number,
        url=f"{cfg.public_base_url}/api/twilio/voice",
        method="POST",
        status_callback=f"{cfg.public_base_url}/api/twilio/status",
        status_callback_method="POST",
        status_callback_event=STATUS_CALLBACK_EVENTS,
    )
    LOGGER.info("Outbound call %s started to %s", call.sid, to_number)

    return OutboundCallResponse(call_sid=str(call.sid), to_number=to_number)
