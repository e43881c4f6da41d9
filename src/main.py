"""Entry point for the realtime telephony voice relay."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from relay.errors import RelayError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Voice Relay",
    description="Relays Twilio media streams through streaming ASR, an LLM and streaming TTS.",
)
app.include_router(twilio_router, prefix="/api")


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    logging.getLogger(__name__).warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
