"""
Session Registry.

In-memory map from authenticated user id to that user's live connection, plus
the logical channels each connection is subscribed to.

Scope is a single process: the registry is created by the application factory
and handed to the WebSocket handler. Sharing sessions between server instances
would need an external pub/sub layer.

Only the latest connection per user is reachable through ``lookup``: a new
registration replaces the old one and returns it, so the caller may close it.
An old connection that is left open still receives channel broadcasts it
subscribed to, but no direct deliveries.

None of the methods await, so each mutation completes before another task on
the event loop can observe the registry.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Set


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def conversation_channel(conversation_id: Any) -> str:
    return f"conversation:{conversation_id}"


class Connection(Protocol):
    """A live transport handle able to push one event to its client."""

    async def send(self, event: str, data: Any) -> None:
        ...


@dataclass
class LiveSession:
    user_id: str
    username: str
    connection: Connection


class SessionRegistry:
    """Process-local registry of live sessions and channel subscriptions."""

    def __init__(self):
        self._sessions: Dict[str, LiveSession] = {}
        self._channels: Dict[str, Set[Connection]] = {}
        self._subscriptions: Dict[Connection, Set[str]] = {}

    def register(self, user_id: str, username: str, connection: Connection) -> Optional[Connection]:
        """
        Make ``connection`` the session of record for ``user_id``.

        Returns:
            The previously registered connection for this user, if any and
            different from ``connection``.
        """
        previous = self._sessions.get(user_id)
        self._sessions[user_id] = LiveSession(user_id=user_id, username=username, connection=connection)
        if previous is not None and previous.connection is not connection:
            return previous.connection
        return None

    def unregister(self, user_id: str, connection: Connection) -> bool:
        """
        Remove the mapping for ``user_id`` if it still points at ``connection``.

        A disconnect of a connection that was already replaced leaves the newer
        registration untouched and returns False.
        """
        current = self._sessions.get(user_id)
        if current is None or current.connection is not connection:
            return False
        del self._sessions[user_id]
        return True

    def lookup(self, user_id: str) -> Optional[Connection]:
        session = self._sessions.get(user_id)
        return session.connection if session else None

    def session(self, user_id: str) -> Optional[LiveSession]:
        return self._sessions.get(user_id)

    def subscribe(self, connection: Connection, channel: str) -> None:
        """Add ``channel`` to the broadcasts ``connection`` receives."""
        self._channels.setdefault(channel, set()).add(connection)
        self._subscriptions.setdefault(connection, set()).add(channel)

    def subscribers(self, channel: str) -> List[Connection]:
        return list(self._channels.get(channel, ()))

    def channels_of(self, connection: Connection) -> Set[str]:
        return set(self._subscriptions.get(connection, ()))

    def detach(self, connection: Connection) -> None:
        """Drop every subscription held by a closed connection."""
        for channel in self._subscriptions.pop(connection, set()):
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._channels[channel]

    def __len__(self) -> int:
        return len(self._sessions)
