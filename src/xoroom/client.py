"""Client-side session for a shared room: state mirror, reconnect and resumption.

The session holds nothing the server does not send it. Every ``state`` or
``presence`` frame replaces the local snapshot wholesale, and ``chat`` frames
append to a local mirror of the room's chat history.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, MutableMapping, Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from . import protocol
from .config import DEFAULT_RECONNECT_DELAY
from .game import CHAT_HISTORY_LIMIT, CHAT_TEXT_LIMIT, PLAYERS
from .logging_config import get_logger

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[Any]]
UpdateListener = Callable[["ClientSession", str], None]


class RoomCodeStore:
    """Remembers the last room code for the lifetime of one client tab.

    ``storage`` can be any mutable mapping that outlives individual
    connections; a plain dict is used when none is given.
    """

    KEY = "tictactoe_last_room"

    def __init__(self, storage: Optional[MutableMapping[str, str]] = None) -> None:
        self._storage: MutableMapping[str, str] = {} if storage is None else storage

    def get(self) -> Optional[str]:
        return protocol.normalize_room_code(self._storage.get(self.KEY)) or None

    def set(self, code: Optional[str]) -> None:
        normalized = protocol.normalize_room_code(code)
        if not normalized:
            self._storage.pop(self.KEY, None)
            return
        self._storage[self.KEY] = normalized

    def clear(self) -> None:
        self._storage.pop(self.KEY, None)


class ClientSession:
    """One client's view of the room server.

    Call :meth:`connect` from a running event loop. When the transport drops,
    local room state is cleared and a single reconnect is scheduled after
    ``reconnect_delay`` seconds; on reconnect the remembered room code is
    rejoined automatically.
    """

    def __init__(
        self,
        url: str,
        *,
        store: Optional[RoomCodeStore] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connector: Optional[Connector] = None,
        on_update: Optional[UpdateListener] = None,
    ) -> None:
        self.url = url
        self.store = store if store is not None else RoomCodeStore()
        self.reconnect_delay = reconnect_delay
        self.on_update = on_update
        self._connector: Connector = connector or websockets.connect

        self.room_code: Optional[str] = None
        self.role: Optional[str] = None
        self.state: Optional[Dict[str, Any]] = None
        self.chat: List[Dict[str, Any]] = []
        self.status = "Disconnected"
        self.last_error: Optional[str] = None

        self._transport: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    # ---- connection management ----

    @property
    def connected(self) -> bool:
        return self._transport is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def connect(self) -> asyncio.Task:
        """Open a fresh transport, dropping any existing or in-flight one."""
        self._closed = False
        self._cancel_reconnect()
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            # The cancelled reader closes its own socket; nothing is sent on it now.
            self._transport = None
            self._clear_room()
        self.status = "Connecting"
        self._reader = asyncio.get_running_loop().create_task(self._run())
        return self._reader

    async def close(self) -> None:
        """Disconnect for good; no reconnect is scheduled."""
        self._closed = True
        self._cancel_reconnect()
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        self._clear_room()
        self.status = "Closed"

    async def _run(self) -> None:
        try:
            transport = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, InvalidHandshake) as exc:
            logger.warning(f"Could not connect to {self.url}: {exc}")
            if asyncio.current_task() is self._reader:
                self._on_close()
            return

        if asyncio.current_task() is not self._reader:
            # Superseded by a newer connect() while the handshake finished.
            await transport.close()
            return
        self._transport = transport
        try:
            await self._on_open()
            async for raw in transport:
                self.handle_message(raw)
        except ConnectionClosed as exc:
            logger.info(f"Connection to {self.url} closed: {exc}")
        finally:
            if self._transport is transport:
                self._transport = None
            await transport.close()
        self._on_close()

    async def _on_open(self) -> None:
        logger.info(f"Connected to {self.url}")
        remembered = self.store.get()
        if remembered and self.room_code is None:
            self.status = f"Connected. Rejoining room {remembered}..."
            await self._send(protocol.join_room_request(remembered))
        else:
            self.status = "Connected. Create or join a room"
        self._notify("open")

    def _on_close(self) -> None:
        self._clear_room()
        self.status = "Disconnected"
        if not self._closed:
            self._schedule_reconnect()
        self._notify("close")

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(self.reconnect_delay, self._reconnect_now)
        logger.debug(f"Reconnect scheduled in {self.reconnect_delay}s")

    def _reconnect_now(self) -> None:
        self._reconnect_timer = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _clear_room(self) -> None:
        self.room_code = None
        self.role = None
        self.state = None
        self.chat = []

    # ---- inbound ----

    def handle_message(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            return
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            return

        kind = message["type"]
        if kind in ("room_created", "room_joined"):
            self.room_code = message.get("roomCode")
            self.role = message.get("role")
            self.last_error = None
            self.store.set(self.room_code)
            self.status = f"Room {self.room_code} as {self.role}"
        elif kind in ("state", "presence"):
            snapshot = message.get("state")
            if not isinstance(snapshot, dict):
                return
            self.state = snapshot
            if isinstance(snapshot.get("chat"), list):
                self.chat = list(snapshot["chat"])[-CHAT_HISTORY_LIMIT:]
        elif kind == "chat":
            entry = message.get("message")
            if not entry:
                return
            self.chat = (self.chat + [entry])[-CHAT_HISTORY_LIMIT:]
        elif kind == "error":
            self.last_error = message.get("message") or "Error"
            self.status = self.last_error
        elif kind != "hello":
            return
        self._notify(kind)

    def _notify(self, kind: str) -> None:
        if self.on_update is not None:
            self.on_update(self, kind)

    # ---- outbound ----

    def can_move(self, index: Optional[int] = None) -> bool:
        if self.room_code is None or self.role not in PLAYERS or not self.state:
            return False
        if self.state.get("isGameOver") or self.state.get("currentPlayer") != self.role:
            return False
        if index is None:
            return True
        board = self.state.get("board") or []
        return 0 <= index < len(board) and board[index] is None

    async def create_room(self) -> bool:
        return await self._send(protocol.create_room_request())

    async def join_room(self, code: str) -> bool:
        if not protocol.normalize_room_code(code):
            return False
        return await self._send(protocol.join_room_request(code))

    async def move(self, index: int) -> bool:
        if not self.can_move(index):
            return False
        return await self._send(protocol.move_request(index))

    async def restart(self) -> bool:
        if self.room_code is None:
            return False
        return await self._send(protocol.restart_request())

    async def send_chat(self, text: str) -> bool:
        text = text.strip()
        if not text or self.room_code is None:
            return False
        return await self._send(protocol.chat_request(text[:CHAT_TEXT_LIMIT]))

    async def leave(self) -> bool:
        if self.room_code is None:
            return False
        sent = await self._send(protocol.leave_request())
        self._clear_room()
        self.store.clear()
        self._notify("leave")
        return sent

    async def _send(self, payload: Dict[str, object]) -> bool:
        transport = self._transport
        if transport is None:
            return False
        try:
            await transport.send(json.dumps(payload))
        except ConnectionClosed as exc:
            logger.debug(f"Dropped {payload['type']}: {exc}")
            return False
        return True
