"""Client for self-hosted vLLM or TGI compatible inference endpoints."""

from __future__ import annotations

import logging
from typing import Iterable, List

import httpx

from config.settings import Settings, get_settings
from llm.base import BaseLLMClient
from relay.errors import LLMFailedError

LOGGER = logging.getLogger(__name__)


class VLLMClient(BaseLLMClient):
    """Minimal client for a self-hosted inference server."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        if not settings.llm_endpoint:
            raise ValueError("Self-hosted LLM endpoint must be configured.")

        self._endpoint = settings.llm_endpoint.rstrip("/")
        self._model = settings.llm_model
        self._api_key = settings.llm_api_key
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int = 120,
    ) -> str:
        payload = {
            "model": self._model,
            "messages": list(messages),
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        async with httpx.AsyncClient(timeout=30, transport=self._transport) as client:
            response = await client.post(
                f"{self._endpoint}/v1/chat/completions",
                json=payload,
                headers=self._headers(),
            )

        response.raise_for_status()
        data = response.json()
        choices: List[dict] = data.get("choices", [])
        if not choices:
            raise LLMFailedError("LLM response contains no choices.")
        return choices[0]["message"]["content"] or ""
