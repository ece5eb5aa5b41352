"""Registry of live rooms keyed by their short join code."""

from __future__ import annotations

import random
import threading
from typing import Dict, List, Optional

from .game import Room
from .logging_config import get_logger

logger = get_logger(__name__)

# No 0/O or 1/I so codes survive being read aloud.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 5


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    choice = (rng or random).choice
    return "".join(choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


class RoomRegistry:
    """Owns every live :class:`Room` for one server process."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._rng = rng

    def create_room(self) -> Room:
        with self._lock:
            code = generate_room_code(self._rng)
            while code in self._rooms:
                code = generate_room_code(self._rng)
            room = Room(code=code)
            self._rooms[code] = room
        logger.info(f"Created room {code} ({len(self._rooms)} live)")
        return room

    def find_room(self, code: str) -> Optional[Room]:
        return self._rooms.get(code)

    def release(self, room: Room) -> None:
        with self._lock:
            if self._rooms.get(room.code) is not room:
                return
            del self._rooms[room.code]
        logger.info(f"Released room {room.code} ({len(self._rooms)} live)")

    def codes(self) -> List[str]:
        return sorted(self._rooms)

    def __contains__(self, code: object) -> bool:
        return code in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
