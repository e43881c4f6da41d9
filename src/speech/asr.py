"""Streaming speech-to-text over Deepgram's live transcription WebSocket."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlparse, urlunparse

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.settings import Settings, get_settings
from relay.errors import TranscriptionFailedError
from telephony.frames import SAMPLE_RATE

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TranscriptEvent:
    """One recognition result for the audio streamed so far."""

    text: str
    is_final: bool
    confidence: float = 0.0

    @property
    def actionable(self) -> bool:
        """Whether the result is stable text worth answering."""

        return self.is_final and bool(self.text.strip())


TranscriptCallback = Callable[[TranscriptEvent], None]


class BaseTranscriber(ABC):
    """Interface for a per-call streaming recognizer."""

    def __init__(self) -> None:
        self._callbacks: list[TranscriptCallback] = []

    def on_transcript(self, callback: TranscriptCallback) -> None:
        """Register a callback invoked once per recognition result."""

        self._callbacks.append(callback)

    def _emit(self, event: TranscriptEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                LOGGER.exception("Transcript callback failed")

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while audio can be forwarded."""

    @abstractmethod
    async def open(self) -> None:
        """Establish the stream. Raises TranscriptionFailedError on failure."""

    @abstractmethod
    async def send(self, audio: bytes) -> None:
        """Forward raw audio; never raises."""

    @abstractmethod
    async def close(self) -> None:
        """Finalize the stream; safe to call more than once."""


def _listen_url(base_url: str, params: dict[str, Any]) -> str:
    parsed = urlparse(base_url)
    scheme = {"https": "wss", "http": "ws"}.get(parsed.scheme, parsed.scheme or "wss")
    path = parsed.path.rstrip("/")
    if not path.endswith("/v1/listen"):
        path = f"{path}/v1/listen"
    return urlunparse(parsed._replace(scheme=scheme, path=path, query=urlencode(params)))


Connector = Callable[..., Awaitable[Any]]


class DeepgramTranscriber(BaseTranscriber):
    """Live transcription of one call's inbound mu-law audio."""

    def __init__(self, settings: Settings | None = None, *, connector: Connector = connect) -> None:
        super().__init__()
        settings = settings or get_settings()
        if not settings.deepgram_api_key:
            raise ValueError("Deepgram API key must be configured for streaming ASR.")

        self._api_key = settings.deepgram_api_key
        self._url = _listen_url(
            settings.deepgram_base_url,
            {
                "model": settings.stt_model,
                "language": settings.stt_language,
                "encoding": "mulaw",
                "sample_rate": SAMPLE_RATE,
                "channels": 1,
                "interim_results": str(settings.stt_interim_results).lower(),
            },
        )
        self._connector = connector
        self._websocket: Any = None
        self._receiver: asyncio.Task | None = None
        self._open = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    async def open(self) -> None:
        if self._closed:
            raise TranscriptionFailedError("Transcriber already closed")
        if self._open:
            return
        try:
            self._websocket = await self._connector(
                self._url,
                additional_headers={"Authorization": f"Token {self._api_key}"},
                ping_interval=20,
                ping_timeout=20,
                max_size=16 * 1024 * 1024,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise TranscriptionFailedError(f"Deepgram streaming connection failed: {exc}") from exc

        self._open = True
        self._receiver = asyncio.create_task(self._receive_loop())
        LOGGER.info("Deepgram live transcription opened")

    async def send(self, audio: bytes) -> None:
        if not self.is_open:
            LOGGER.debug("Dropping %d audio bytes: ASR stream not open", len(audio))
            return
        try:
            await self._websocket.send(audio)
        except ConnectionClosed as exc:
            LOGGER.warning("Deepgram stream closed while sending audio: %s", exc)
            self._open = False
        except Exception:
            LOGGER.exception("Error forwarding audio to Deepgram")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        was_open, self._open = self._open, False

        if self._websocket is not None:
            if was_open:
                with suppress(ConnectionClosed, OSError):
                    await self._websocket.send(json.dumps({"type": "CloseStream"}))
            with suppress(ConnectionClosed, OSError):
                await self._websocket.close()

        if self._receiver is not None and not self._receiver.done():
            self._receiver.cancel()
            with suppress(asyncio.CancelledError):
                await self._receiver
        LOGGER.info("Deepgram live transcription finalized")

    async def _receive_loop(self) -> None:
        try:
            async for message in self._websocket:
                event = parse_deepgram_message(message)
                if event is not None:
                    self._emit(event)
        except ConnectionClosed as exc:
            LOGGER.info("Deepgram stream closed: %s", exc)
        except Exception:
            LOGGER.exception("Deepgram receive loop failed")
        finally:
            self._open = False


def parse_deepgram_message(message: str | bytes) -> TranscriptEvent | None:
    """Convert a Deepgram ``Results`` message into a transcript event.

    Metadata, utterance-end and other message types yield None.
    """

    try:
        data = json.loads(message)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        LOGGER.warning("Ignoring non-JSON message from Deepgram")
        return None
    if not isinstance(data, dict) or data.get("type") != "Results":
        return None

    alternatives = (data.get("channel") or {}).get("alternatives") or [{}]
    best = alternatives[0] or {}
    return TranscriptEvent(
        text=str(best.get("transcript") or "").strip(),
        is_final=bool(data.get("is_final", False)),
        confidence=float(best.get("confidence") or 0.0),
    )


def build_transcriber(settings: Settings | None = None) -> BaseTranscriber:
    """Factory returning a fresh transcriber for one call."""

    return DeepgramTranscriber(settings)
