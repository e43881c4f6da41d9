from __future__ import annotations

import numpy as np

_BIAS = 0x84
_CLIP = 32635


def ulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to PCM16 int16 array."""

    data = np.frombuffer(ulaw_bytes, dtype=np.uint8)

    mu = np.bitwise_not(data)
    sign = np.bitwise_and(mu, 0x80)
    exponent = np.right_shift(np.bitwise_and(mu, 0x70), 4).astype(np.int32)
    mantissa = np.bitwise_and(mu, 0x0F).astype(np.int32)

    pcm = (((mantissa << 3) + _BIAS) << exponent) - _BIAS
    pcm = np.where(sign != 0, -pcm, pcm)

    return pcm.astype(np.int16)


def ulaw_encode(pcm16: np.ndarray) -> bytes:
    """Encode PCM16 int16 array to G.711 mu-law bytes.

    This is a vectorized mu-law encoder suitable for realtime packetization.
    """

    if pcm16.size == 0:
        return b""

    x = pcm16.astype(np.int32)
    sign = (x < 0).astype(np.int32)
    x = np.abs(x)

    x = np.minimum(x, _CLIP)
    x = x + _BIAS

    exponent = np.zeros_like(x)
    for exp in range(8):
        exponent = np.where(x >= (1 << (exp + 7)), exp, exponent)

    mantissa = (x >> (exponent + 3)) & 0x0F

    ulaw = np.bitwise_not((sign << 7) | (exponent << 4) | mantissa).astype(np.uint8)
    return ulaw.tobytes()


def linear16_to_ulaw(pcm_le: bytes) -> bytes:
    """Convert little-endian 16-bit PCM bytes to mu-law bytes."""

    if len(pcm_le) % 2:
        raise ValueError("linear16 buffer must contain whole samples")
    return ulaw_encode(np.frombuffer(pcm_le, dtype="<i2"))
