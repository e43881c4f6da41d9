from __future__ import annotations

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosedOK, InvalidHandshake
from websockets.frames import Close

from config.settings import Settings
from relay.errors import TranscriptionFailedError
from speech.asr import DeepgramTranscriber, TranscriptEvent, build_transcriber, parse_deepgram_message


def _settings(**overrides) -> Settings:
    values = {"deepgram_api_key": "dg-key"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _results(text: str, *, is_final: bool = True, confidence: float = 0.9) -> str:
    return json.dumps(
        {
            "type": "Results",
            "is_final": is_final,
            "speech_final": is_final,
            "channel": {"alternatives": [{"transcript": text, "confidence": confidence}]},
        }
    )


class FakeDeepgramSocket:
    def __init__(self) -> None:
        self.sent: list = []
        self.closed = False
        self.fail_send = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def push(self, message: str | None) -> None:
        self._incoming.put_nowait(message)

    async def send(self, data) -> None:
        if self.fail_send:
            raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self.push(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeConnector:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.socket = FakeDeepgramSocket()
        self.calls: list[tuple[str, dict]] = []

    async def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.socket


def test_parse_final_results():
    event = parse_deepgram_message(_results("  hello there ", confidence=0.8))
    assert event == TranscriptEvent(text="hello there", is_final=True, confidence=0.8)
    assert event.actionable


def test_parse_interim_results_is_not_actionable():
    event = parse_deepgram_message(_results("hel", is_final=False))
    assert event is not None
    assert not event.actionable


def test_parse_ignores_other_message_types_and_garbage():
    assert parse_deepgram_message(json.dumps({"type": "Metadata", "request_id": "x"})) is None
    assert parse_deepgram_message(json.dumps({"type": "UtteranceEnd"})) is None
    assert parse_deepgram_message("not json") is None
    assert parse_deepgram_message(json.dumps(["Results"])) is None


def test_parse_results_without_alternatives_yields_empty_text():
    event = parse_deepgram_message(json.dumps({"type": "Results", "is_final": True, "channel": {}}))
    assert event is not None
    assert event.text == ""
    assert not event.actionable


def test_listen_url_carries_telephony_audio_format():
    connector = FakeConnector()
    transcriber = DeepgramTranscriber(
        _settings(stt_model="nova-3", stt_language="de"), connector=connector
    )

    async def scenario():
        await transcriber.open()
        await transcriber.close()

    asyncio.run(scenario())
    url = connector.calls[0][0]

    assert url.startswith("wss://api.deepgram.com/v1/listen?")
    for param in (
        "model=nova-3",
        "language=de",
        "encoding=mulaw",
        "sample_rate=8000",
        "channels=1",
        "interim_results=false",
    ):
        assert param in url


def test_missing_api_key_is_rejected():
    with pytest.raises(ValueError):
        DeepgramTranscriber(Settings(_env_file=None, deepgram_api_key=None))


def test_open_streams_audio_and_emits_transcripts():
    async def scenario():
        connector = FakeConnector()
        transcriber = DeepgramTranscriber(_settings(), connector=connector)
        events: list[TranscriptEvent] = []
        transcriber.on_transcript(events.append)

        await transcriber.open()
        assert transcriber.is_open
        await transcriber.send(b"\xff" * 160)

        connector.socket.push(json.dumps({"type": "Metadata"}))
        connector.socket.push(_results("good morning"))
        for _ in range(10):
            await asyncio.sleep(0)

        await transcriber.close()
        return connector, transcriber, events

    connector, transcriber, events = asyncio.run(scenario())

    url, kwargs = connector.calls[0]
    assert url.startswith("wss://api.deepgram.com/v1/listen?")
    assert kwargs["additional_headers"] == {"Authorization": "Token dg-key"}
    assert [e.text for e in events] == ["good morning"]
    assert connector.socket.sent[0] == b"\xff" * 160
    assert json.loads(connector.socket.sent[-1]) == {"type": "CloseStream"}
    assert connector.socket.closed
    assert not transcriber.is_open


def test_callback_errors_do_not_stop_the_receiver():
    async def scenario():
        connector = FakeConnector()
        transcriber = DeepgramTranscriber(_settings(), connector=connector)
        received: list[str] = []

        def flaky(event: TranscriptEvent) -> None:
            received.append(event.text)
            if len(received) == 1:
                raise RuntimeError("boom")

        transcriber.on_transcript(flaky)
        await transcriber.open()
        connector.socket.push(_results("one"))
        connector.socket.push(_results("two"))
        for _ in range(10):
            await asyncio.sleep(0)
        await transcriber.close()
        return received

    assert asyncio.run(scenario()) == ["one", "two"]


def test_close_is_idempotent_and_send_after_close_is_dropped():
    async def scenario():
        connector = FakeConnector()
        transcriber = DeepgramTranscriber(_settings(), connector=connector)
        await transcriber.open()
        await transcriber.close()
        await transcriber.close()
        await transcriber.send(b"\x00" * 160)
        return connector.socket.sent

    sent = asyncio.run(scenario())
    assert sent == [json.dumps({"type": "CloseStream"})]


def test_remote_close_marks_stream_lost():
    async def scenario():
        connector = FakeConnector()
        transcriber = DeepgramTranscriber(_settings(), connector=connector)
        await transcriber.open()

        connector.socket.push(None)
        for _ in range(5):
            await asyncio.sleep(0)
        lost_after_end = not transcriber.is_open
        await transcriber.close()
        return lost_after_end

    assert asyncio.run(scenario())


def test_send_on_closed_socket_marks_stream_lost():
    async def scenario():
        connector = FakeConnector()
        transcriber = DeepgramTranscriber(_settings(), connector=connector)
        await transcriber.open()
        connector.socket.fail_send = True

        await transcriber.send(b"\x00" * 160)
        lost = not transcriber.is_open
        await transcriber.close()
        return lost

    assert asyncio.run(scenario())


@pytest.mark.parametrize(
    "error",
    [OSError("connection refused"), InvalidHandshake("bad handshake"), asyncio.TimeoutError()],
)
def test_connection_failure_raises_transcription_failed(error):
    transcriber = DeepgramTranscriber(_settings(), connector=FakeConnector(error=error))

    with pytest.raises(TranscriptionFailedError):
        asyncio.run(transcriber.open())

    assert not transcriber.is_open


def test_build_transcriber_returns_fresh_instances():
    settings = _settings()
    assert build_transcriber(settings) is not build_transcriber(settings)
