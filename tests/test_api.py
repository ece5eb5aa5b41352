"""Tests for the FastAPI room server over real WebSocket sessions."""

from __future__ import annotations

from fastapi.testclient import TestClient

from xoroom.server import create_app


def _create_room(ws) -> str:
    assert ws.receive_json() == {"type": "hello"}
    ws.send_json({"type": "create_room"})
    created = ws.receive_json()
    assert created["type"] == "room_created"
    assert created["role"] == "X"
    assert ws.receive_json()["type"] == "state"
    assert ws.receive_json()["type"] == "presence"
    return created["roomCode"]


def _join_room(ws, code: str) -> dict:
    assert ws.receive_json() == {"type": "hello"}
    ws.send_json({"type": "join_room", "roomCode": code})
    joined = ws.receive_json()
    assert joined["type"] == "room_joined"
    state = ws.receive_json()
    assert state["type"] == "state"
    assert ws.receive_json()["type"] == "presence"
    return {"role": joined["role"], "state": state["state"]}


def test_two_players_move_and_ignore_occupied_cell():
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            code = _create_room(a)
            assert len(code) == 5

            joined = _join_room(b, code)
            assert joined["role"] == "O"
            assert joined["state"]["playerCount"] == 2
            presence = a.receive_json()
            assert presence["type"] == "presence"
            assert presence["state"]["playerCount"] == 2

            a.send_json({"type": "move", "index": 4})
            for ws in (a, b):
                msg = ws.receive_json()
                assert msg["type"] == "state"
                assert msg["state"]["board"][4] == "X"
                assert msg["state"]["currentPlayer"] == "O"

            # Occupied cell: no broadcast, so the chat is the next frame.
            b.send_json({"type": "move", "index": 4})
            b.send_json({"type": "chat", "text": "nice"})
            for ws in (a, b):
                msg = ws.receive_json()
                assert msg["type"] == "chat"
                assert msg["message"]["player"] == "O"
                assert msg["message"]["text"] == "nice"


def test_spectator_cannot_play_and_leaving_updates_presence():
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            code = _create_room(a)
            _join_room(b, code)
            a.receive_json()  # presence for b

            with client.websocket_connect("/ws") as c:
                joined = _join_room(c, code)
                assert joined["role"] == "SPECTATOR"
                for ws in (a, b):
                    assert ws.receive_json()["type"] == "presence"

                c.send_json({"type": "move", "index": 0})
                c.send_json({"type": "restart"})
                a.send_json({"type": "move", "index": 8})
                for ws in (a, b, c):
                    msg = ws.receive_json()
                    assert msg["type"] == "state"
                    assert msg["state"]["board"] == [None] * 8 + ["X"]

                c.send_json({"type": "leave"})
                for ws in (a, b):
                    msg = ws.receive_json()
                    assert msg["type"] == "presence"
                    assert msg["state"]["playerCount"] == 2

            a.send_json({"type": "leave"})
            msg = b.receive_json()
            assert msg["type"] == "presence"
            assert msg["state"]["playerCount"] == 1

            details = client.get(f"/api/room/{code.lower()}").json()
            assert details["playerCount"] == 1
            assert details["availableSlots"] == ["X"]


def test_join_unknown_room_reports_error():
    with TestClient(create_app()) as client:
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "hello"}
            ws.send_text("garbage")
            ws.send_json({"type": "join_room", "roomCode": "QQQQQ"})
            assert ws.receive_json() == {"type": "error", "message": "Room not found"}
            ws.send_json({"type": "move", "index": 0})
            assert ws.receive_json() == {"type": "error", "message": "Not in a room"}


def test_inspect_missing_room_returns_404():
    with TestClient(create_app()) as client:
        missing = client.get("/api/room/NOPE2")
        assert missing.status_code == 404
        assert client.get("/healthz").json() == {"status": "ok", "rooms": 0}
