"""FastAPI WebSocket server hosting shared tic-tac-toe rooms."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from . import protocol
from .game import Room
from .logging_config import get_logger
from .protocol import (
    ChatMessage,
    CreateRoomMessage,
    JoinRoomMessage,
    LeaveMessage,
    MoveMessage,
    RestartMessage,
)
from .registry import RoomRegistry

logger = get_logger(__name__)


@dataclass
class ConnectionSession:
    """Server-side record of one socket and the room it is bound to."""

    id: str
    websocket: Any
    room_code: Optional[str] = None
    role: Optional[str] = None


def _is_open(websocket: Any) -> bool:
    for attr in ("client_state", "application_state"):
        if getattr(websocket, attr, WebSocketState.CONNECTED) != WebSocketState.CONNECTED:
            return False
    return True


class ConnectionHandler:
    """Turns inbound frames into room mutations and fans the results out.

    A frame is processed to completion, broadcasts included, while holding the
    target room's lock, so moves, restarts and chat on one room never
    interleave.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry
        self.sessions: Dict[str, ConnectionSession] = {}

    # ---- connection lifecycle ----

    async def open(self, websocket: Any) -> ConnectionSession:
        session = ConnectionSession(id=uuid.uuid4().hex, websocket=websocket)
        self.sessions[session.id] = session
        logger.debug(f"Connection {session.id} opened")
        await self._send(session, protocol.hello())
        return session

    async def close(self, session: ConnectionSession) -> None:
        """Same cleanup as an explicit leave, for sockets that just vanished."""
        self.sessions.pop(session.id, None)
        await self._detach(session)
        logger.debug(f"Connection {session.id} closed")

    async def dispatch(self, session: ConnectionSession, raw: Union[str, bytes]) -> None:
        message = protocol.parse_client_message(raw)
        if message is None:
            logger.debug(f"Dropped malformed frame from {session.id}")
            return

        if isinstance(message, CreateRoomMessage):
            await self._detach(session)
            room = self.registry.create_room()
            await self._enter(session, room, created=True)
            return

        if isinstance(message, JoinRoomMessage):
            room = self.registry.find_room(message.normalized_code)
            if room is None:
                await self._send(session, protocol.error(protocol.ERROR_ROOM_NOT_FOUND))
                return
            if session.room_code != room.code:
                await self._detach(session)
            await self._enter(session, room, created=False)
            return

        room = self._bound_room(session)
        if room is None:
            await self._send(session, protocol.error(protocol.ERROR_NOT_IN_ROOM))
            return

        async with room.lock:
            if isinstance(message, MoveMessage):
                if room.apply_move(session.id, message.index):
                    await self.broadcast(room, protocol.state(room.public_snapshot()))
            elif isinstance(message, RestartMessage):
                if room.restart(session.id):
                    await self.broadcast(room, protocol.state(room.public_snapshot()))
            elif isinstance(message, ChatMessage):
                entry = room.post_chat(session.id, message.text)
                if entry is not None:
                    await self.broadcast(room, protocol.chat(entry))
            elif isinstance(message, LeaveMessage):
                await self._leave(session, room)

    # ---- room membership ----

    def _bound_room(self, session: ConnectionSession) -> Optional[Room]:
        if session.room_code is None:
            return None
        return self.registry.find_room(session.room_code)

    def _bind(self, session: ConnectionSession, room: Room, role: str) -> None:
        session.room_code = room.code
        session.role = role

    def _unbind(self, session: ConnectionSession) -> None:
        session.room_code = None
        session.role = None

    async def _enter(self, session: ConnectionSession, room: Room, created: bool) -> None:
        async with room.lock:
            if self.registry.find_room(room.code) is not room:
                # Emptied and released while we waited for the lock.
                await self._send(session, protocol.error(protocol.ERROR_ROOM_NOT_FOUND))
                return
            role = room.add(session.id)
            self._bind(session, room, role)
            logger.info(f"Connection {session.id} entered room {room.code} as {role}")

            reply = protocol.room_created if created else protocol.room_joined
            await self._send(session, reply(room.code, role))
            await self._send(session, protocol.state(room.public_snapshot()))
            await self.broadcast(room, protocol.presence(room.public_snapshot()))

    async def _detach(self, session: ConnectionSession) -> None:
        room = self._bound_room(session)
        if room is None:
            self._unbind(session)
            return
        async with room.lock:
            await self._leave(session, room)

    async def _leave(self, session: ConnectionSession, room: Room) -> None:
        # Caller holds room.lock.
        room.remove(session.id)
        self._unbind(session)
        logger.info(f"Connection {session.id} left room {room.code}")
        if room.is_empty:
            self.registry.release(room)
            return
        await self.broadcast(room, protocol.presence(room.public_snapshot()))

    # ---- sending ----

    async def broadcast(self, room: Room, payload: Dict[str, object]) -> None:
        for connection_id in list(room.connections):
            session = self.sessions.get(connection_id)
            if session is not None:
                await self._send(session, payload)

    async def _send(self, session: ConnectionSession, payload: Dict[str, object]) -> None:
        websocket = session.websocket
        if not _is_open(websocket):
            logger.debug(f"Skipped {payload['type']} for {session.id}: socket not open")
            return
        try:
            await websocket.send_json(payload)
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            logger.warning(f"Failed to send {payload['type']} to {session.id}: {exc}")


def create_app(registry: Optional[RoomRegistry] = None) -> FastAPI:
    """Build the application around an explicitly owned room registry."""

    handler = ConnectionHandler(registry if registry is not None else RoomRegistry())
    app = FastAPI(
        title="xoroom",
        description="Shared tic-tac-toe rooms with spectators and chat",
    )
    app.state.handler = handler
    app.state.registry = handler.registry

    @app.get("/healthz")
    def healthz() -> Dict[str, object]:
        return {"status": "ok", "rooms": len(handler.registry)}

    @app.get("/api/room/{room_code}")
    def inspect_room(room_code: str) -> Dict[str, object]:
        room = handler.registry.find_room(protocol.normalize_room_code(room_code))
        if room is None:
            raise HTTPException(status_code=404, detail=protocol.ERROR_ROOM_NOT_FOUND)
        return {
            "roomCode": room.code,
            "playerCount": room.player_count,
            "spectators": len(room.connections) - room.player_count,
            "availableSlots": room.available_slots(),
            "isGameOver": room.is_game_over,
        }

    @app.websocket("/ws")
    async def room_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        session = await handler.open(websocket)
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes") or b""
                await handler.dispatch(session, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await handler.close(session)

    return app


app = create_app()
