# src/murmur/api/v1/endpoints/realtime.py
"""WebSocket endpoint carrying the realtime messaging protocol."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from murmur.core.errors import AuthenticationError
from murmur.services.dispatcher import ConnectionContext, EventDispatcher
from murmur.services.realtime import ConnectionHub
from murmur.utils.ids import new_id

from ..dependencies import SessionDep, resolve_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _handshake_token(websocket: WebSocket) -> str | None:
    """Return the bearer token from the Authorization header or ``?token=``."""
    header = websocket.headers.get("authorization")
    if header:
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return websocket.query_params.get("token")


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, db: SessionDep) -> None:
    """Authenticate, then relay frames through the dispatcher until the peer leaves."""
    try:
        user = resolve_user(_handshake_token(websocket), db)
    except AuthenticationError as exc:
        logger.info("Rejected socket handshake: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    hub: ConnectionHub = websocket.app.state.hub
    ctx = ConnectionContext(user_id=user.id, connection_id=new_id())
    dispatcher = EventDispatcher(db)

    announce = await asyncio.to_thread(dispatcher.connect, ctx)
    await websocket.accept()
    hub.register(ctx.connection_id, ctx.user_id, websocket)
    await hub.apply(ctx.connection_id, announce)

    try:
        while True:
            raw = await websocket.receive_text()
            instructions = await asyncio.to_thread(dispatcher.dispatch_raw, ctx, raw)
            await hub.apply(ctx.connection_id, instructions)
    except WebSocketDisconnect as exc:
        logger.debug("Connection %s closed with code %s", ctx.connection_id, exc.code)
    finally:
        # Runs inline: the task may already be cancelled, so nothing may be awaited before it.
        hub.unregister(ctx.connection_id)
        farewell = dispatcher.disconnect(ctx)
        await hub.apply(ctx.connection_id, farewell)
