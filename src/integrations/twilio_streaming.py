"""Twilio Media Streams wire protocol.

Inbound events arrive as JSON text frames (``connected``, ``start``, ``media``,
``mark``, ``stop``); outbound we send ``media`` frames and ``mark`` events.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from fastapi import WebSocket
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.websockets import WebSocketDisconnect, WebSocketState

from relay.errors import ChannelClosedError, ProtocolError
from telephony.frames import encode_payload

LOGGER = logging.getLogger(__name__)


class _TwilioModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StreamStart(_TwilioModel):
    stream_sid: str = Field(alias="streamSid", min_length=1)
    call_sid: str | None = Field(default=None, alias="callSid")
    tracks: list[str] = Field(default_factory=list)


class StartMessage(_TwilioModel):
    event: Literal["start"]
    start: StreamStart


class MediaPayload(_TwilioModel):
    payload: str
    track: str | None = None


class MediaMessage(_TwilioModel):
    event: Literal["media"]
    media: MediaPayload


class MarkPayload(_TwilioModel):
    name: str


class MarkMessage(_TwilioModel):
    event: Literal["mark"]
    mark: MarkPayload


class StopMessage(_TwilioModel):
    event: Literal["stop"]
    stream_sid: str | None = Field(default=None, alias="streamSid")


TwilioMessage = StartMessage | MediaMessage | MarkMessage | StopMessage

_MESSAGE_TYPES: dict[str, type[_TwilioModel]] = {
    "start": StartMessage,
    "media": MediaMessage,
    "mark": MarkMessage,
    "stop": StopMessage,
}


def parse_twilio_ws_message(text: str) -> TwilioMessage | None:
    """Parse one inbound text frame.

    Returns None for well-formed events the relay does not act on
    (``connected``, ``dtmf``, ...).

    Raises:
        ProtocolError: if the frame is not JSON or a known event is malformed.
    """

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ProtocolError(f"Non-JSON media stream message: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError("Media stream message is not a JSON object")

    event = str(data.get("event") or "")
    model = _MESSAGE_TYPES.get(event)
    if model is None:
        return None
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise ProtocolError(f"Malformed '{event}' message: {exc.error_count()} error(s)") from exc


def build_media_message(stream_sid: str, frame: bytes) -> dict[str, Any]:
    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": encode_payload(frame)},
    }


def build_mark_message(stream_sid: str, name: str) -> dict[str, Any]:
    return {"event": "mark", "streamSid": stream_sid, "mark": {"name": name}}


class TwilioMediaChannel:
    """Media channel backed by the accepted FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, message: dict[str, Any]) -> None:
        if not self.is_open:
            raise ChannelClosedError()
        try:
            await self._websocket.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            # RuntimeError once a close frame went out, OSError on connection reset.
            self._closed = True
            raise ChannelClosedError(str(exc) or None) from exc

    async def close(self, code: int = 1000) -> None:
        if not self.is_open:
            self._closed = True
            return
        self._closed = True
        try:
            await self._websocket.close(code=code)
        except RuntimeError:
            LOGGER.debug("WebSocket already closed")
