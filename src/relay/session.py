"""Per-call session state and the relay that drives it."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Literal

from integrations.twilio_streaming import (
    MarkMessage,
    MediaMessage,
    StartMessage,
    StopMessage,
    parse_twilio_ws_message,
)
from relay.channel import MediaChannel
from relay.errors import ProtocolError, SessionExistsError
from relay.history import ConversationHistory
from telephony.frames import decode_payload

if TYPE_CHECKING:  # pragma: no cover
    from relay.orchestrator import TurnOrchestrator
    from relay.pacer import OutboundPacer
    from relay.registry import SessionRegistry
    from speech.asr import BaseTranscriber, TranscriptEvent
    from speech.tts import BaseSynthesizer

LOGGER = logging.getLogger(__name__)

BusyTranscriptPolicy = Literal["drop", "queue"]


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    REPLYING = "replying"
    CLOSED = "closed"


@dataclass
class Session:
    """Everything the relay keeps about one active media stream."""

    id: str
    channel: MediaChannel
    history: ConversationHistory
    call_id: str | None = None
    turn_in_flight: bool = False

    @classmethod
    def new(
        cls,
        session_id: str,
        *,
        channel: MediaChannel,
        system_prompt: str,
        history_max_entries: int = 20,
        call_id: str | None = None,
    ) -> Session:
        return cls(
            id=session_id,
            channel=channel,
            call_id=call_id,
            history=ConversationHistory(system_prompt, max_entries=history_max_entries),
        )


class RelaySession:
    """Relays one Twilio media stream through ASR -> LLM -> TTS and back.

    The WebSocket receive loop calls :meth:`handle_message` for every inbound
    frame and only ever waits on the ASR send, so ingestion keeps flowing while
    a reply is being played. Finalized transcripts are handed over through a
    queue to a single turn-loop task, which owns turn execution; at most one
    turn runs at a time.

    State is derived: ``IDLE`` until the ASR stream is open, ``STREAMING`` while
    it is, ``REPLYING`` while a turn is in flight, ``CLOSED`` for good after
    stop or disconnect.
    """

    def __init__(
        self,
        channel: MediaChannel,
        *,
        registry: SessionRegistry,
        transcriber_factory: Callable[[], BaseTranscriber],
        orchestrator: TurnOrchestrator,
        synthesizer: BaseSynthesizer,
        pacer: OutboundPacer,
        busy_policy: BusyTranscriptPolicy = "drop",
        reconnect_interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._transcriber_factory = transcriber_factory
        self._orchestrator = orchestrator
        self._synthesizer = synthesizer
        self._pacer = pacer
        self._busy_policy = busy_policy
        self._reconnect_interval = reconnect_interval
        self._clock = clock

        self._session: Session | None = None
        self._transcriber: BaseTranscriber | None = None
        self._transcripts: asyncio.Queue[str] = asyncio.Queue()
        self._turn_task: asyncio.Task | None = None
        self._next_asr_attempt = 0.0
        self._closed = False
        self.completed_turns = 0
        self.dropped_transcripts = 0

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> SessionState:
        if self._closed:
            return SessionState.CLOSED
        if self._transcriber is None:
            return SessionState.IDLE
        if self._session is not None and self._session.turn_in_flight:
            return SessionState.REPLYING
        return SessionState.STREAMING

    @property
    def _label(self) -> str:
        return self._session.id if self._session else "<no stream>"

    async def handle_message(self, text: str) -> None:
        """Dispatch one inbound media stream frame."""

        if self._closed:
            return
        try:
            message = parse_twilio_ws_message(text)
        except ProtocolError as exc:
            LOGGER.warning("Ignoring malformed message on %s: %s", self._label, exc.detail)
            return

        if isinstance(message, MediaMessage):
            if message.media.track and message.media.track != "inbound":
                return
            try:
                audio = decode_payload(message.media.payload)
            except ProtocolError as exc:
                LOGGER.warning("Ignoring media frame on %s: %s", self._label, exc.detail)
                return
            # Deepgram reads a zero-length binary message as end of stream.
            if audio:
                await self.forward_audio(audio)
        elif isinstance(message, StartMessage):
            await self.start(message.start.stream_sid, call_id=message.start.call_sid)
        elif isinstance(message, MarkMessage):
            LOGGER.debug("Playback mark '%s' reached on %s", message.mark.name, self._label)
        elif isinstance(message, StopMessage):
            LOGGER.info("Stream stopped: %s", self._label)
            await self.close()

    async def start(self, stream_sid: str, *, call_id: str | None = None) -> None:
        if self._session is not None:
            LOGGER.warning("Ignoring repeated start event for %s", self._label)
            return
        try:
            self._session = await self._registry.create(
                stream_sid, channel=self._channel, call_id=call_id
            )
        except SessionExistsError as exc:
            LOGGER.warning("Rejecting stream %s: %s", stream_sid, exc.detail)
            await self.close()
            return

        LOGGER.info("Stream started: %s (call %s)", stream_sid, call_id)
        self._turn_task = asyncio.create_task(self._turn_loop(), name=f"relay-turns-{stream_sid}")
        await self._open_transcriber()

    async def forward_audio(self, audio: bytes) -> None:
        """Forward inbound audio to ASR, (re)opening the stream when needed."""

        if self._closed:
            return
        if self._session is None:
            LOGGER.warning("Dropping media received before the start event")
            return

        if self._transcriber is not None and not self._transcriber.is_open:
            LOGGER.warning("ASR stream lost for %s; reopening", self._label)
            await self._release_transcriber()
        if self._transcriber is None and not await self._open_transcriber():
            return

        await self._transcriber.send(audio)

    async def wait_for_turns(self) -> None:
        """Block until every accepted transcript has been answered."""

        await self._transcripts.join()

    async def close(self) -> None:
        """Tear the session down; safe to call more than once."""

        if self._closed:
            return
        self._closed = True

        if self._turn_task is not None and not self._turn_task.done():
            self._turn_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._turn_task

        await self._release_transcriber()

        if self._session is not None:
            await self._registry.remove(self._session.id, session=self._session)
            LOGGER.info(
                "Session %s closed after %d turn(s), %d transcript(s) dropped",
                self._session.id,
                self.completed_turns,
                self.dropped_transcripts,
            )

        await self._channel.close()

    async def _open_transcriber(self) -> bool:
        now = self._clock()
        if now < self._next_asr_attempt:
            return False

        try:
            transcriber = self._transcriber_factory()
            transcriber.on_transcript(self._on_transcript)
            await transcriber.open()
        except Exception:
            LOGGER.exception("Could not open ASR stream for %s", self._label)
            # Only failed attempts are rate limited; a lost stream is replaced right away.
            self._next_asr_attempt = now + self._reconnect_interval
            return False

        if self._closed:
            await transcriber.close()
            return False
        self._transcriber = transcriber
        return True

    async def _release_transcriber(self) -> None:
        transcriber, self._transcriber = self._transcriber, None
        if transcriber is None:
            return
        try:
            await transcriber.close()
        except Exception:
            LOGGER.exception("Failed to finalize ASR stream for %s", self._label)

    def _on_transcript(self, event: TranscriptEvent) -> None:
        if self._closed or self._session is None:
            return
        if not event.actionable:
            if event.text:
                LOGGER.debug("Interim transcript on %s: %s", self._label, event.text)
            return

        text = event.text.strip()
        busy = self._session.turn_in_flight or not self._transcripts.empty()
        if busy and self._busy_policy == "drop":
            self.dropped_transcripts += 1
            LOGGER.info("Reply in flight on %s; dropping transcript: %s", self._label, text)
            return

        LOGGER.info("[%s] transcript (confidence %.2f): %s", self._label, event.confidence, text)
        self._transcripts.put_nowait(text)

    async def _turn_loop(self) -> None:
        while True:
            text = await self._transcripts.get()
            try:
                await self._run_turn(text)
            finally:
                self._transcripts.task_done()

    async def _run_turn(self, text: str) -> None:
        session = self._session
        session.turn_in_flight = True
        try:
            reply = await self._orchestrator.take_turn(session.history, text)
            LOGGER.info("[%s] assistant reply: %s", session.id, reply)

            try:
                audio = await self._synthesizer.synthesize(reply)
            except Exception:
                LOGGER.exception("TTS failed for %s; skipping playback", session.id)
                return
            if not audio:
                LOGGER.warning("TTS returned no audio for %s", session.id)
                return

            result = await self._pacer.play(self._channel, session.id, audio)
            if result.completed:
                self.completed_turns += 1
        except Exception:
            LOGGER.exception("Turn failed for %s", session.id)
        finally:
            session.turn_in_flight = False
