"""Core rules and per-room state for shared tic-tac-toe rooms."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

Player = str  # "X" or "O"
Cell = Optional[Player]

PLAYERS: Tuple[Player, Player] = ("X", "O")
SPECTATOR = "SPECTATOR"

CHAT_HISTORY_LIMIT = 100
CHAT_TEXT_LIMIT = 200

# Scan order matters: rows, then columns, then diagonals.
WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def empty_board() -> List[Cell]:
    return [None] * 9


def winning_line(board: List[Cell]) -> Optional[List[int]]:
    """Return the first completed line on ``board`` or ``None``."""
    for a, b, c in WINNING_LINES:
        v = board[a]
        if v is not None and v == board[b] == board[c]:
            return [a, b, c]
    return None


def is_draw(board: List[Cell]) -> bool:
    return all(c is not None for c in board) and winning_line(board) is None


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Room:
    """One game board plus its members and chat history.

    Members are tracked by connection id. The room is the source of truth for
    who holds the ``X`` and ``O`` slots; every other member is a spectator.
    """

    code: str
    created_at: float = field(default_factory=time.time)
    connections: Set[str] = field(default_factory=set)
    players: Dict[Player, Optional[str]] = field(
        default_factory=lambda: {"X": None, "O": None}
    )
    board: List[Cell] = field(default_factory=empty_board)
    current_player: Player = "X"
    is_game_over: bool = False
    chat: List[Dict[str, object]] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    # ---- membership ----

    def add(self, connection_id: str) -> str:
        """Attach a connection and hand it the first free slot."""
        self.connections.add(connection_id)
        current = self.role_of(connection_id)
        if current != SPECTATOR:
            return current
        for player in PLAYERS:
            if self.players[player] is None:
                self.players[player] = connection_id
                return player
        return SPECTATOR

    def remove(self, connection_id: str) -> None:
        self.connections.discard(connection_id)
        for player in PLAYERS:
            if self.players[player] == connection_id:
                self.players[player] = None

    def role_of(self, connection_id: str) -> str:
        for player in PLAYERS:
            if self.players[player] == connection_id:
                return player
        return SPECTATOR

    @property
    def player_count(self) -> int:
        return sum(1 for player in PLAYERS if self.players[player] is not None)

    @property
    def is_empty(self) -> bool:
        return not self.connections

    def available_slots(self) -> List[Player]:
        return [player for player in PLAYERS if self.players[player] is None]

    # ---- game ----

    def apply_move(self, connection_id: str, index: object) -> bool:
        """Place the mover's mark. Invalid moves are ignored and return False."""
        if self.is_game_over:
            return False
        role = self.role_of(connection_id)
        if role not in PLAYERS or role != self.current_player:
            return False
        if isinstance(index, bool) or not isinstance(index, int):
            return False
        if not 0 <= index <= 8 or self.board[index] is not None:
            return False

        self.board[index] = role
        if winning_line(self.board) is not None or is_draw(self.board):
            self.is_game_over = True
        else:
            self.current_player = "O" if self.current_player == "X" else "X"
        return True

    def restart(self, connection_id: str) -> bool:
        if self.role_of(connection_id) not in PLAYERS:
            return False
        self.board = empty_board()
        self.current_player = "X"
        self.is_game_over = False
        return True

    def post_chat(self, connection_id: str, text: str) -> Optional[Dict[str, object]]:
        text = text.strip()
        if not text:
            return None
        message: Dict[str, object] = {
            "player": self.role_of(connection_id),
            "text": text[:CHAT_TEXT_LIMIT],
            "time": _now_ms(),
        }
        self.chat = (self.chat + [message])[-CHAT_HISTORY_LIMIT:]
        return message

    def public_snapshot(self) -> Dict[str, object]:
        line = winning_line(self.board)
        return {
            "code": self.code,
            "board": list(self.board),
            "currentPlayer": self.current_player,
            "isGameOver": self.is_game_over,
            "winnerLine": line,
            "isDraw": line is None and is_draw(self.board),
            "playerCount": self.player_count,
            "chat": [dict(entry) for entry in self.chat[-CHAT_HISTORY_LIMIT:]],
        }
