from __future__ import annotations

import numpy as np
import pytest

from telephony.g711 import linear16_to_ulaw, ulaw_decode, ulaw_encode


def test_ulaw_encode_decode_shape_and_types() -> None:
    # 20ms of 8kHz samples
    pcm = (np.sin(np.linspace(0, 2 * np.pi, 160, endpoint=False)) * 12000).astype(np.int16)

    ulaw = ulaw_encode(pcm)
    assert isinstance(ulaw, bytes | bytearray)
    assert len(ulaw) == pcm.size

    decoded = ulaw_decode(ulaw)
    assert decoded.dtype == np.int16
    assert decoded.shape == pcm.shape
    # Companding error stays within a few percent of full scale.
    assert int(np.max(np.abs(decoded.astype(np.int32) - pcm.astype(np.int32)))) < 600


def test_silence_encodes_to_mulaw_silence_byte() -> None:
    ulaw = ulaw_encode(np.zeros(320, dtype=np.int16))
    assert ulaw == b"\xff" * 320
    assert int(np.max(np.abs(ulaw_decode(ulaw)))) == 0


def test_linear16_bytes_convert_to_one_byte_per_sample() -> None:
    pcm = np.array([0, 1000, -1000, 32767, -32768], dtype="<i2")
    ulaw = linear16_to_ulaw(pcm.tobytes())
    assert len(ulaw) == 5
    assert ulaw[0] == 0xFF


def test_linear16_rejects_partial_samples() -> None:
    with pytest.raises(ValueError):
        linear16_to_ulaw(b"\x00\x01\x02")
