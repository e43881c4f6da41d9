"""Real-time outbound audio pacing.

Twilio plays what it receives into a small jitter buffer; sending a whole reply
back-to-back overruns it and clips the audio on the caller's side. Frames are
therefore released at the rate they are played.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from integrations.twilio_streaming import build_mark_message, build_media_message
from relay.channel import MediaChannel
from relay.errors import ChannelClosedError
from telephony.frames import FRAME_BYTES, frame_count, frame_duration, split_into_frames

LOGGER = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class PlaybackResult:
    frames_total: int
    frames_sent: int
    completed: bool


class OutboundPacer:
    def __init__(
        self,
        *,
        mark_name: str = "tts_end",
        frame_bytes: int = FRAME_BYTES,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._mark_name = mark_name
        self._frame_bytes = frame_bytes
        self._sleep = sleep

    async def play(self, channel: MediaChannel, stream_sid: str, audio: bytes) -> PlaybackResult:
        """Send ``audio`` as paced media frames followed by one end-of-playback mark.

        A channel that closes mid-playback ends the sequence quietly; the mark is
        only sent when every frame went out.
        """

        total = frame_count(len(audio), self._frame_bytes)
        sent = 0
        try:
            for frame in split_into_frames(audio, self._frame_bytes):
                if not channel.is_open:
                    LOGGER.info(
                        "Channel closed during playback for %s after %d/%d frames",
                        stream_sid,
                        sent,
                        total,
                    )
                    return PlaybackResult(total, sent, completed=False)
                await channel.send_json(build_media_message(stream_sid, frame))
                sent += 1
                await self._sleep(frame_duration(frame))

            if not channel.is_open:
                return PlaybackResult(total, sent, completed=False)
            await channel.send_json(build_mark_message(stream_sid, self._mark_name))
        except ChannelClosedError:
            LOGGER.info("Playback aborted for %s after %d/%d frames", stream_sid, sent, total)
            return PlaybackResult(total, sent, completed=False)

        LOGGER.debug("Played %d frames for %s", sent, stream_sid)
        return PlaybackResult(total, sent, completed=True)
