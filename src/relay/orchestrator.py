"""Turn orchestration: history update plus a single LLM round-trip."""

from __future__ import annotations

import logging

from llm.base import BaseLLMClient
from relay.history import ConversationHistory

LOGGER = logging.getLogger(__name__)


class TurnOrchestrator:
    """Turns a finalized user utterance into the assistant's reply text.

    The caller serializes turns per session; this class only mutates the
    history it is given and never raises on provider failure.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        *,
        fallback_reply: str,
        temperature: float = 0.2,
        max_tokens: int = 120,
    ) -> None:
        self._llm = llm
        self._fallback_reply = fallback_reply
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def take_turn(self, history: ConversationHistory, user_text: str) -> str:
        history.add_user(user_text)
        try:
            reply = await self._llm.chat(
                history.as_messages(),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception:
            LOGGER.exception("LLM request failed; answering with fallback reply")
            reply = self._fallback_reply
        else:
            reply = (reply or "").strip()
            if not reply:
                LOGGER.warning("LLM returned an empty reply; answering with fallback reply")
                reply = self._fallback_reply

        history.add_assistant(reply)
        return reply
