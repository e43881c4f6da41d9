from __future__ import annotations

from typing import Any, Protocol


class MediaChannel(Protocol):
    """Duplex media connection to the telephony provider."""

    @property
    def is_open(self) -> bool:  # pragma: no cover - protocol stub
        ...

    async def send_json(self, message: dict[str, Any]) -> None:  # pragma: no cover
        """Send one JSON event; raises ChannelClosedError once the peer is gone."""
        ...

    async def close(self, code: int = 1000) -> None:  # pragma: no cover
        ...
