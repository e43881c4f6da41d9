"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from typing import TYPE_CHECKING

from config.settings import get_settings
from relay.registry import SessionRegistry

if TYPE_CHECKING:  # pragma: no cover
    from relay.channel import MediaChannel
    from relay.orchestrator import TurnOrchestrator
    from relay.session import RelaySession
    from speech.tts import BaseSynthesizer

RelayFactory = Callable[["MediaChannel"], "RelaySession"]


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(
        system_prompt=settings.system_prompt,
        history_max_entries=settings.history_max_entries,
        collision_policy=settings.session_collision_policy,
    )


@lru_cache(maxsize=1)
def _orchestrator_factory() -> TurnOrchestrator:
    # Lazy import so provider SDKs are only loaded when a call actually arrives.
    from llm.factory import build_llm_client
    from relay.orchestrator import TurnOrchestrator

    settings = get_settings()
    return TurnOrchestrator(
        build_llm_client(settings),
        fallback_reply=settings.fallback_reply,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )


@lru_cache(maxsize=1)
def _synthesizer_factory() -> BaseSynthesizer:
    from speech.tts import build_synthesizer

    return build_synthesizer(get_settings())


def get_relay_factory() -> RelayFactory:
    from relay.pacer import OutboundPacer
    from relay.session import RelaySession
    from speech.asr import build_transcriber

    settings = get_settings()
    registry = get_registry()

    def factory(channel: MediaChannel) -> RelaySession:
        return RelaySession(
            channel,
            registry=registry,
            transcriber_factory=lambda: build_transcriber(settings),
            orchestrator=_orchestrator_factory(),
            synthesizer=_synthesizer_factory(),
            pacer=OutboundPacer(mark_name=settings.playback_mark_name),
            busy_policy=settings.busy_transcript_policy,
            reconnect_interval=settings.stt_reconnect_interval_seconds,
        )

    return factory
