"""
Connection registry for real-time notification sessions.

Tracks which users currently hold a live, authenticated WebSocket session.
Only used for delivery decisions; nothing here is persisted and the map is
rebuilt from scratch on every process start.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can push a JSON frame to a client (e.g. a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


@dataclass(frozen=True)
class LiveSession:
    user_id: int
    session_id: str
    transport: Transport


class ConnectionRegistry:
    """
    Process-wide map of user id -> current live session.

    At most one session per user is used for delivery: registering a new
    session supersedes the previous one (the old socket is not closed).
    Reads are point-in-time snapshots; callers must tolerate a user going
    offline right after is_live() returned True.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, LiveSession] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, session_id: str, transport: Transport) -> LiveSession:
        """Register (or replace) the live session for a user."""
        session = LiveSession(user_id=user_id, session_id=session_id, transport=transport)
        with self._lock:
            previous = self._sessions.get(user_id)
            self._sessions[user_id] = session
        if previous is not None and previous.session_id != session_id:
            logger.info(f"User {user_id} session {previous.session_id} superseded by {session_id}")
        else:
            logger.info(f"User {user_id} connected with session {session_id}")
        return session

    def unregister(self, user_id: int, session_id: Optional[str] = None) -> bool:
        """
        Remove a user's live session.

        When session_id is given, the entry is only removed if it is still
        that session, so a superseded connection closing late does not
        evict its replacement.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            current = self._sessions.get(user_id)
            if current is None:
                return False
            if session_id is not None and current.session_id != session_id:
                return False
            del self._sessions[user_id]
        logger.info(f"User {user_id} disconnected (session {current.session_id})")
        return True

    def is_live(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._sessions

    def get_session(self, user_id: int) -> Optional[LiveSession]:
        with self._lock:
            return self._sessions.get(user_id)

    def connected_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def snapshot(self) -> List[LiveSession]:
        """Copy of the current sessions, safe to iterate while others (un)register."""
        with self._lock:
            return list(self._sessions.values())

    async def send_to(self, user_id: int, event: str, payload: Any) -> bool:
        """
        Push one event frame to a user's live session.

        Transport failures are logged and swallowed.

        Returns:
            True if the frame was handed to the transport
        """
        session = self.get_session(user_id)
        if session is None:
            logger.debug(f"User {user_id} not connected, skipping live {event}")
            return False
        return await self._send(session, event, payload)

    async def broadcast(self, event: str, payload: Any) -> int:
        """
        Push one event frame to every live session.

        Returns:
            Number of sessions the frame was delivered to
        """
        delivered = 0
        for session in self.snapshot():
            if await self._send(session, event, payload):
                delivered += 1
        return delivered

    async def _send(self, session: LiveSession, event: str, payload: Any) -> bool:
        try:
            await session.transport.send_json({"event": event, "data": payload})
            return True
        except Exception as e:
            logger.warning(
                f"Failed to deliver {event} to user {session.user_id} "
                f"(session {session.session_id}): {e}"
            )
            return False


# Global registry instance
_connection_registry: Optional[ConnectionRegistry] = None
_registry_lock = threading.Lock()


def get_connection_registry() -> ConnectionRegistry:
    """
    Get the global connection registry instance.

    Returns:
        The process-wide registry
    """
    global _connection_registry
    if _connection_registry is None:
        with _registry_lock:
            if _connection_registry is None:
                _connection_registry = ConnectionRegistry()
    return _connection_registry
