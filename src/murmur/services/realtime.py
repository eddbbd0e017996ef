"""Delivery of dispatcher instructions to live WebSocket connections."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from murmur.schemas.events import server_frame
from murmur.services.dispatcher import (
    Broadcast,
    BroadcastAll,
    Instruction,
    JoinRoom,
    LeaveRoom,
    Reply,
)
from murmur.services.presence import PresenceRegistry

logger = logging.getLogger(__name__)

__all__ = ["ConnectionHub"]


class FrameSink(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionHub:
    """Map connection ids to sockets and fan frames out through the registry."""

    def __init__(self, registry: PresenceRegistry) -> None:
        self.registry = registry
        self._sockets: dict[str, FrameSink] = {}

    def register(self, connection_id: str, user_id: str, socket: FrameSink) -> None:
        """Track a newly accepted socket."""
        self._sockets[connection_id] = socket
        self.registry.on_connect(user_id, connection_id)

    def unregister(self, connection_id: str) -> str | None:
        """Forget a socket; returns the user it belonged to."""
        self._sockets.pop(connection_id, None)
        return self.registry.on_disconnect(connection_id)

    async def apply(self, connection_id: str, instructions: Iterable[Instruction]) -> None:
        """Carry out dispatcher output for the connection that produced it."""
        for instruction in instructions:
            if isinstance(instruction, Reply):
                await self._send(connection_id, server_frame(instruction.event, instruction.data))
            elif isinstance(instruction, Broadcast):
                await self.broadcast_to_room(
                    instruction.room,
                    instruction.event,
                    instruction.data,
                    exclude_connection=instruction.exclude_connection,
                )
            elif isinstance(instruction, BroadcastAll):
                await self.broadcast_to_all(
                    instruction.event,
                    instruction.data,
                    exclude_connection=instruction.exclude_connection,
                )
            elif isinstance(instruction, JoinRoom):
                self.registry.join_room(connection_id, instruction.room)
            elif isinstance(instruction, LeaveRoom):
                self.registry.leave_room(connection_id, instruction.room)

    async def broadcast_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        *,
        exclude_connection: str | None = None,
    ) -> None:
        frame = server_frame(event, data)
        for connection_id in sorted(self.registry.room_members(room)):
            if connection_id != exclude_connection:
                await self._send(connection_id, frame)

    async def broadcast_to_all(
        self,
        event: str,
        data: Any,
        *,
        exclude_connection: str | None = None,
    ) -> None:
        frame = server_frame(event, data)
        for connection_id in sorted(self.registry.connections()):
            if connection_id != exclude_connection:
                await self._send(connection_id, frame)

    async def send_to_users(self, user_ids: Iterable[str], event: str, data: Any) -> None:
        frame = server_frame(event, data)
        for user_id in dict.fromkeys(user_ids):
            connection_id = self.registry.connection_for(user_id)
            if connection_id is not None:
                await self._send(connection_id, frame)

    async def _send(self, connection_id: str, frame: dict[str, Any]) -> None:
        socket = self._sockets.get(connection_id)
        if socket is None:
            return
        try:
            await socket.send_json(frame)
        except Exception:  # noqa: BLE001 - a dead peer must not stop the fan-out
            logger.debug("Dropping frame for closed connection %s", connection_id, exc_info=True)
