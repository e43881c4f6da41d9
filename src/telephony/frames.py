"""Wire audio codec and frame geometry for Twilio Media Streams."""

from __future__ import annotations

import base64
import binascii
import math
from collections.abc import Iterator
from typing import Final

from relay.errors import ProtocolError

SAMPLE_RATE: Final[int] = 8000
SAMPLE_WIDTH: Final[int] = 1  # mu-law is one byte per sample
FRAME_MS: Final[int] = 20
FRAME_BYTES: Final[int] = SAMPLE_RATE * SAMPLE_WIDTH * FRAME_MS // 1000
BYTES_PER_SECOND: Final[int] = SAMPLE_RATE * SAMPLE_WIDTH


def decode_payload(payload: str) -> bytes:
    """Decode a base64 media payload into raw mu-law bytes.

    Raises:
        ProtocolError: if the payload is not valid base64.
    """

    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolError(f"Invalid base64 media payload: {exc}") from exc


def encode_payload(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def split_into_frames(buffer: bytes, frame_bytes: int = FRAME_BYTES) -> Iterator[bytes]:
    """Yield consecutive fixed-size frames; a shorter trailing frame is still yielded."""

    if frame_bytes <= 0:
        raise ValueError("frame_bytes must be positive")
    view = memoryview(buffer)
    for offset in range(0, len(view), frame_bytes):
        yield bytes(view[offset : offset + frame_bytes])


def frame_count(num_bytes: int, frame_bytes: int = FRAME_BYTES) -> int:
    return math.ceil(num_bytes / frame_bytes) if num_bytes > 0 else 0


def frame_duration(frame: bytes) -> float:
    """Real-time playback duration of a frame in seconds."""

    return len(frame) / BYTES_PER_SECOND
