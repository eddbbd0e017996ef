"""In-process registry of live connections, their users and their rooms.

A room is keyed by conversation id. The registry holds no persistent state;
it is rebuilt from scratch when the process restarts.
"""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

__all__ = ["PresenceRegistry"]


class PresenceRegistry:
    """Track which user owns each connection and which rooms it has joined.

    Presence is last-connection-wins: a second connection from the same user
    replaces the user's current mapping while both connections keep their
    own room memberships.
    """

    def __init__(self) -> None:
        self._user_by_connection: dict[str, str] = {}
        self._connection_by_user: dict[str, str] = {}
        self._rooms_by_connection: dict[str, set[str]] = {}
        self._members_by_room: dict[str, set[str]] = {}

    def on_connect(self, user_id: str, connection_id: str) -> None:
        """Register a freshly authenticated connection."""
        previous = self._connection_by_user.get(user_id)
        self._user_by_connection[connection_id] = user_id
        self._connection_by_user[user_id] = connection_id
        self._rooms_by_connection.setdefault(connection_id, set())
        if previous is not None and previous != connection_id:
            logger.debug("User %s replaced connection %s with %s", user_id, previous, connection_id)

    def on_disconnect(self, connection_id: str) -> str | None:
        """Forget a connection and its rooms.

        Returns:
            The user that owned the connection, or None if it was unknown
        """
        user_id = self._user_by_connection.pop(connection_id, None)
        for room in self._rooms_by_connection.pop(connection_id, set()):
            self._discard_member(room, connection_id)
        if user_id is not None and self._connection_by_user.get(user_id) == connection_id:
            del self._connection_by_user[user_id]
        return user_id

    def join_room(self, connection_id: str, conversation_id: str) -> None:
        """Add a connection to a room; joining twice has no further effect."""
        self._rooms_by_connection.setdefault(connection_id, set()).add(conversation_id)
        self._members_by_room.setdefault(conversation_id, set()).add(connection_id)

    def leave_room(self, connection_id: str, conversation_id: str) -> None:
        """Remove a connection from a room; leaving an unjoined room is a no-op."""
        rooms = self._rooms_by_connection.get(connection_id)
        if rooms is not None:
            rooms.discard(conversation_id)
        self._discard_member(conversation_id, connection_id)

    def evict_user(self, user_id: str, conversation_id: str) -> set[str]:
        """Take every connection owned by ``user_id`` out of a room.

        Returns:
            The connection ids that were removed
        """
        evicted = {
            connection_id
            for connection_id, owner in self._user_by_connection.items()
            if owner == user_id and connection_id in self._members_by_room.get(conversation_id, ())
        }
        for connection_id in evicted:
            self.leave_room(connection_id, conversation_id)
        return evicted

    def close_room(self, conversation_id: str) -> None:
        """Empty a room, e.g. once its conversation is gone."""
        for connection_id in self._members_by_room.pop(conversation_id, set()):
            rooms = self._rooms_by_connection.get(connection_id)
            if rooms is not None:
                rooms.discard(conversation_id)

    def _discard_member(self, conversation_id: str, connection_id: str) -> None:
        members = self._members_by_room.get(conversation_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._members_by_room[conversation_id]

    def room_members(self, conversation_id: str) -> set[str]:
        """Return the connection ids currently joined to a room."""
        return set(self._members_by_room.get(conversation_id, ()))

    def rooms_for(self, connection_id: str) -> set[str]:
        """Return the rooms a connection has joined."""
        return set(self._rooms_by_connection.get(connection_id, ()))

    def user_for(self, connection_id: str) -> str | None:
        return self._user_by_connection.get(connection_id)

    def connection_for(self, user_id: str) -> str | None:
        return self._connection_by_user.get(user_id)

    def online_users(self) -> set[str]:
        """Return users with a current connection."""
        return set(self._connection_by_user)

    def is_online(self, user_id: str) -> bool:
        return user_id in self._connection_by_user

    def connections(self) -> set[str]:
        """Return every registered connection id."""
        return set(self._user_by_connection)

    def clear(self) -> None:
        """Drop all state."""
        self._user_by_connection.clear()
        self._connection_by_user.clear()
        self._rooms_by_connection.clear()
        self._members_by_room.clear()
