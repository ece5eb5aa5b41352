"""xoroom package exposing room game logic, the room server, and the client session."""

from .client import ClientSession, RoomCodeStore
from .game import Room
from .registry import RoomRegistry
from .server import ConnectionHandler, app, create_app

__all__ = [
    "ClientSession",
    "ConnectionHandler",
    "Room",
    "RoomCodeStore",
    "RoomRegistry",
    "app",
    "create_app",
]
