"""Streaming text-to-speech rendered straight into the telephony encoding."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

from config.settings import Settings, get_settings
from relay.errors import TTSFailedError
from telephony.frames import SAMPLE_RATE
from telephony.g711 import linear16_to_ulaw

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    @abstractmethod
    def stream(self, text: str) -> AsyncIterator[bytes]:
        """Yield mu-law 8 kHz audio chunks for ``text``.

        Raises TTSFailedError when the provider rejects the request.
        """

    async def synthesize(self, text: str) -> bytes:
        """Collect the whole rendition into one buffer."""

        return b"".join([chunk async for chunk in self.stream(text)])


class DeepgramSynthesizer(BaseSynthesizer):
    """Deepgram Aura over the REST ``/v1/speak`` endpoint with a streamed body."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        if not settings.deepgram_api_key:
            raise ValueError("Deepgram API key must be configured for TTS.")

        self._api_key = settings.deepgram_api_key
        self._endpoint = f"{settings.deepgram_base_url.rstrip('/')}/v1/speak"
        self._model = settings.tts_model
        self._encoding = settings.tts_encoding
        self._timeout = settings.tts_timeout_seconds
        self._transport = transport

    def _params(self) -> dict[str, str | int]:
        return {
            "model": self._model,
            "encoding": self._encoding,
            "sample_rate": SAMPLE_RATE,
            "container": "none",
        }

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "audio/*",
        }

    async def stream(self, text: str) -> AsyncIterator[bytes]:
        if not text.strip():
            return

        carry = b""
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                async with client.stream(
                    "POST",
                    self._endpoint,
                    params=self._params(),
                    json={"text": text},
                    headers=self._headers(),
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise TTSFailedError(
                            f"Deepgram TTS returned {response.status_code}: {body[:200]}"
                        )

                    async for chunk in response.aiter_bytes():
                        if not chunk:
                            continue
                        if self._encoding == "mulaw":
                            yield chunk
                            continue
                        # linear16 samples may straddle chunk boundaries.
                        data = carry + chunk
                        usable = len(data) - (len(data) % 2)
                        carry = data[usable:]
                        if usable:
                            yield linear16_to_ulaw(data[:usable])
            except httpx.HTTPError as exc:
                raise TTSFailedError(f"Deepgram TTS request failed: {exc}") from exc

        if carry:
            LOGGER.debug("Discarding trailing half sample from linear16 TTS stream")


def build_synthesizer(settings: Settings | None = None) -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    return DeepgramSynthesizer(settings)
