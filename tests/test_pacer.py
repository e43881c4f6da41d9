from __future__ import annotations

import asyncio
import base64

import pytest

from fakes import FakeChannel
from relay.errors import ChannelClosedError
from relay.pacer import OutboundPacer


class RecordingSleep:
    def __init__(self) -> None:
        self.durations: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.durations.append(seconds)


def test_frames_are_paced_in_order_and_followed_by_one_mark():
    audio = bytes(range(200)) * 5  # 1000 bytes -> 6 full frames + 40 bytes
    channel = FakeChannel()
    sleep = RecordingSleep()
    pacer = OutboundPacer(sleep=sleep)

    result = asyncio.run(pacer.play(channel, "S1", audio))

    media = channel.media()
    assert result.completed is True
    assert result.frames_total == result.frames_sent == len(media) == 7
    assert b"".join(base64.b64decode(m["media"]["payload"]) for m in media) == audio
    assert all(m["streamSid"] == "S1" for m in channel.sent)
    assert channel.sent[-1] == {"event": "mark", "streamSid": "S1", "mark": {"name": "tts_end"}}
    assert len(channel.marks()) == 1
    assert sleep.durations[:6] == [pytest.approx(0.02)] * 6
    assert sleep.durations[6] == pytest.approx(0.005)


def test_playback_stops_when_channel_closes_mid_stream():
    channel = FakeChannel(close_after_media=3)
    pacer = OutboundPacer(sleep=RecordingSleep())

    result = asyncio.run(pacer.play(channel, "S1", b"\xff" * 1600))

    assert result.frames_total == 10
    assert result.frames_sent == 3
    assert result.completed is False
    assert len(channel.media()) == 3
    assert channel.marks() == []


def test_send_failure_is_treated_as_end_of_call():
    class BrokenChannel(FakeChannel):
        async def send_json(self, message):
            if len(self.sent) == 2:
                raise ChannelClosedError("reset by peer")
            await super().send_json(message)

    channel = BrokenChannel()
    result = asyncio.run(OutboundPacer(sleep=RecordingSleep()).play(channel, "S1", b"\xff" * 800))

    assert result.frames_sent == 2
    assert result.completed is False
    assert channel.marks() == []


def test_custom_mark_name():
    channel = FakeChannel()
    asyncio.run(OutboundPacer(mark_name="done", sleep=RecordingSleep()).play(channel, "S9", b"\xff"))
    assert channel.marks() == [{"event": "mark", "streamSid": "S9", "mark": {"name": "done"}}]
