"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable


class BaseLLMClient(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int = 120,
    ) -> str:
        """Return a chat-style completion."""
