"""API-facing Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OutboundCallRequest(BaseModel):
    to_number: str | None = Field(
        default=None,
        description="E.164 phone number; defaults to TWILIO_DEFAULT_TO_NUMBER.",
    )


class OutboundCallResponse(BaseModel):
    call_sid: str
    to_number: str
