from __future__ import annotations

from dataclasses import dataclass

from config.settings import get_settings
from relay.errors import CallSetupError


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str
    default_to_number: str | None = None


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise CallSetupError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise CallSetupError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise CallSetupError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
        default_to_number=settings.twilio_default_to_number,
    )


def build_twilio_client():
    cfg = get_twilio_config()

    from twilio.rest import Client

    return Client(cfg.account_sid, cfg.auth_token)
