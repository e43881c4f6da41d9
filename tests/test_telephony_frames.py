from __future__ import annotations

import base64

import pytest

from relay.errors import ProtocolError
from telephony.frames import (
    FRAME_BYTES,
    decode_payload,
    encode_payload,
    frame_count,
    frame_duration,
    split_into_frames,
)


def test_frame_geometry_is_20ms_of_8khz_mulaw():
    assert FRAME_BYTES == 160
    assert frame_duration(b"\xff" * FRAME_BYTES) == pytest.approx(0.020)


def test_payload_round_trip_preserves_bytes():
    raw = bytes(range(256)) * 3
    payload = encode_payload(raw)
    assert payload == base64.b64encode(raw).decode("ascii")
    assert decode_payload(payload) == raw


def test_decode_rejects_invalid_base64():
    with pytest.raises(ProtocolError):
        decode_payload("not base64!!")


def test_split_keeps_short_trailing_frame():
    buffer = b"\x01" * (FRAME_BYTES * 3 + 40)
    frames = list(split_into_frames(buffer))

    assert [len(f) for f in frames] == [160, 160, 160, 40]
    assert b"".join(frames) == buffer
    assert frame_count(len(buffer)) == len(frames)


def test_split_is_lazy_and_handles_empty_buffer():
    frames = split_into_frames(b"\x00" * 400)
    assert next(frames) == b"\x00" * 160
    assert list(split_into_frames(b"")) == []
    assert frame_count(0) == 0


def test_short_frame_duration_is_proportional():
    assert frame_duration(b"\xff" * 40) == pytest.approx(0.005)
