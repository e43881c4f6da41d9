"""Domain-specific exceptions for the call relay.

These exceptions are safe to import from API layers without pulling in provider SDKs.
"""

from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class ProtocolError(RelayError):
    status_code = 400
    default_detail = "Malformed media stream message."


class ChannelClosedError(RelayError):
    status_code = 410
    default_detail = "Media channel is closed."


class SessionExistsError(RelayError):
    status_code = 409
    default_detail = "A session with this stream id is already active."


class TranscriptionFailedError(RelayError):
    status_code = 503
    default_detail = "Speech recognition stream failed."


class LLMFailedError(RelayError):
    status_code = 503
    default_detail = "LLM request failed."


class TTSFailedError(RelayError):
    status_code = 503
    default_detail = "Speech synthesis failed."


class CallSetupError(RelayError):
    status_code = 503
    default_detail = "Outbound calling is not configured."
