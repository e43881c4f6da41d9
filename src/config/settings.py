"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Deepgram (speech recognition + synthesis)
    deepgram_api_key: str | None = Field(default=None)
    deepgram_base_url: str = Field(default="https://api.deepgram.com")
    stt_model: str = Field(default="nova-2")
    stt_language: str = Field(default="en-US")
    stt_interim_results: bool = Field(
        default=False,
        description="Ask for interim hypotheses. They are logged but never answered.",
    )
    stt_reconnect_interval_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Minimum delay between two attempts to open the ASR stream for one call.",
    )
    tts_model: str = Field(default="aura-asteria-en")
    tts_encoding: Literal["mulaw", "linear16"] = Field(
        default="mulaw",
        description="Encoding requested from the TTS provider; linear16 is transcoded to mu-law.",
    )
    tts_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # LLM connectivity
    llm_provider: Literal["openai", "self_hosted_vllm"] = Field(default="openai")
    llm_endpoint: str | None = Field(
        default=None, description="HTTP endpoint for the self-hosted inference server."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(default="gpt-4o-mini")
    llm_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=120, gt=0)

    # Conversation
    system_prompt: str = Field(
        default="You are a concise phone assistant. Keep replies short."
    )
    fallback_reply: str = Field(
        default="Sorry, I'm having trouble responding right now.",
        description="Spoken instead of a reply when the LLM request fails.",
    )
    history_max_entries: int = Field(
        default=20,
        ge=3,
        description="Upper bound on history length, system prompt included.",
    )
    busy_transcript_policy: Literal["drop", "queue"] = Field(
        default="drop",
        description="What happens to a final transcript that arrives while a reply is in flight.",
    )
    session_collision_policy: Literal["replace", "reject"] = Field(
        default="replace",
        description="What happens when a start event reuses an active stream id.",
    )
    playback_mark_name: str = Field(default="tts_end")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1415...")
    twilio_default_to_number: str | None = Field(
        default=None,
        description="Number dialled by the outbound call endpoint when none is given.",
    )
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<app>.onrender.com).",
    )
    twilio_greeting: str = Field(
        default="Hello, connecting you to the AI assistant. Please speak after the beep."
    )
    twilio_say_voice: str = Field(default="Polly.Joanna")
    twilio_calls_api_key: str | None = Field(
        default=None,
        description="Optional API key required to call the outbound call endpoint.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
