"""Bounded conversation history kept per call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    content: str


class ConversationHistory:
    """Ordered chat turns with a fixed system turn at index 0.

    The history never grows beyond ``max_entries``; when it would, the oldest
    non-system turns are evicted first.
    """

    def __init__(self, system_prompt: str, *, max_entries: int = 20) -> None:
        if max_entries < 2:
            raise ValueError("max_entries must leave room for the system turn and one more")
        self._max_entries = max_entries
        self._turns: list[ChatTurn] = [ChatTurn("system", system_prompt)]

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def system_prompt(self) -> str:
        return self._turns[0].content

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(self._turns)

    def __getitem__(self, index: int) -> ChatTurn:
        return self._turns[index]

    def append(self, role: Role, content: str) -> None:
        if role == "system":
            raise ValueError("the system turn is fixed")
        self._turns.append(ChatTurn(role, content))
        self._trim()

    def add_user(self, content: str) -> None:
        self.append("user", content)

    def add_assistant(self, content: str) -> None:
        self.append("assistant", content)

    def as_messages(self) -> list[dict[str, str]]:
        """Return the history in chat-completion message format."""

        return [{"role": turn.role, "content": turn.content} for turn in self._turns]

    def _trim(self) -> None:
        overflow = len(self._turns) - self._max_entries
        if overflow > 0:
            del self._turns[1 : 1 + overflow]
