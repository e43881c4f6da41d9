from __future__ import annotations

import asyncio
import logging
from typing import Literal

from relay.channel import MediaChannel
from relay.errors import SessionExistsError
from relay.session import Session

LOGGER = logging.getLogger(__name__)

CollisionPolicy = Literal["replace", "reject"]


class SessionRegistry:
    """In-memory mapping of stream id to active call session.

    Note: This is a single-process store. Sessions are not shared between
    workers or instances.
    """

    def __init__(
        self,
        *,
        system_prompt: str,
        history_max_entries: int = 20,
        collision_policy: CollisionPolicy = "replace",
    ) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}
        self._system_prompt = system_prompt
        self._history_max_entries = history_max_entries
        self._collision_policy = collision_policy

    async def create(
        self,
        session_id: str,
        *,
        channel: MediaChannel,
        call_id: str | None = None,
    ) -> Session:
        session = Session.new(
            session_id,
            channel=channel,
            call_id=call_id,
            system_prompt=self._system_prompt,
            history_max_entries=self._history_max_entries,
        )
        async with self._lock:
            stale = self._sessions.get(session_id)
            if stale is not None:
                if self._collision_policy == "reject":
                    raise SessionExistsError(f"Stream {session_id} is already active")
                LOGGER.warning(
                    "Replacing stale session for stream %s (call %s)", session_id, stale.call_id
                )
            self._sessions[session_id] = session
        return session

    async def get(self, session_id: str) -> Session | None:
        async with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str, *, session: Session | None = None) -> bool:
        """Drop a session; idempotent.

        When ``session`` is given, the entry is removed only if it still maps to
        that exact session, so a replaced session cannot evict its successor.
        """

        async with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[session_id]
            return True

    async def active_ids(self) -> list[str]:
        async with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)
