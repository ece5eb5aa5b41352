"""Wire contract shared by the room server and :mod:`xoroom.client`.

Every frame is a JSON object with a string ``type``. Inbound frames are
validated with pydantic; anything that fails validation is treated as noise
and dropped by the caller.
"""

from __future__ import annotations

from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)


class _ClientMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateRoomMessage(_ClientMessage):
    type: Literal["create_room"]


class JoinRoomMessage(_ClientMessage):
    type: Literal["join_room"]
    room_code: str = Field(default="", alias="roomCode")

    @property
    def normalized_code(self) -> str:
        return normalize_room_code(self.room_code)


class MoveMessage(_ClientMessage):
    """Range and turn checks belong to the room; only the type is checked here."""

    type: Literal["move"]
    index: int

    @field_validator("index", mode="before")
    @classmethod
    def reject_booleans(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("index must be an integer")
        return value


class RestartMessage(_ClientMessage):
    type: Literal["restart"]


class ChatMessage(_ClientMessage):
    type: Literal["chat"]
    text: str = ""


class LeaveMessage(_ClientMessage):
    type: Literal["leave"]


ClientMessage = Annotated[
    Union[
        CreateRoomMessage,
        JoinRoomMessage,
        MoveMessage,
        RestartMessage,
        ChatMessage,
        LeaveMessage,
    ],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> Optional[_ClientMessage]:
    """Decode one inbound frame, returning ``None`` for anything malformed."""
    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError:
        return None


def normalize_room_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


# ---- server -> client ----

ERROR_ROOM_NOT_FOUND = "Room not found"
ERROR_NOT_IN_ROOM = "Not in a room"


def hello() -> Dict[str, object]:
    return {"type": "hello"}


def room_created(room_code: str, role: str) -> Dict[str, object]:
    return {"type": "room_created", "roomCode": room_code, "role": role}


def room_joined(room_code: str, role: str) -> Dict[str, object]:
    return {"type": "room_joined", "roomCode": room_code, "role": role}


def state(snapshot: Dict[str, object]) -> Dict[str, object]:
    return {"type": "state", "state": snapshot}


def presence(snapshot: Dict[str, object]) -> Dict[str, object]:
    return {"type": "presence", "state": snapshot}


def chat(message: Dict[str, object]) -> Dict[str, object]:
    return {"type": "chat", "message": message}


def error(message: str) -> Dict[str, object]:
    return {"type": "error", "message": message}


# ---- client -> server ----


def create_room_request() -> Dict[str, object]:
    return {"type": "create_room"}


def join_room_request(room_code: str) -> Dict[str, object]:
    return {"type": "join_room", "roomCode": normalize_room_code(room_code)}


def move_request(index: int) -> Dict[str, object]:
    return {"type": "move", "index": index}


def restart_request() -> Dict[str, object]:
    return {"type": "restart"}


def chat_request(text: str) -> Dict[str, object]:
    return {"type": "chat", "text": text}


def leave_request() -> Dict[str, object]:
    return {"type": "leave"}
