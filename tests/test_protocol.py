"""
Unit tests for the socket wire protocol.
"""

import json

import pytest

from taskpulse.realtime import Event, RoomKind
from taskpulse.realtime.protocol import (
    AUTH,
    JOIN,
    LEAVE,
    PING,
    decode_command,
    encode_auth_response,
    encode_error,
    encode_event,
    encode_joined,
    encode_left,
    encode_pong,
)


class TestDecodeCommand:
    """Test client frame decoding."""

    def test_auth(self):
        command = decode_command(json.dumps({"type": "auth", "token": "test-token-12345"}))
        assert command.type == AUTH
        assert command.token == "test-token-12345"
        assert command.room is None

    def test_auth_without_token(self):
        with pytest.raises(ValueError):
            decode_command('{"type": "auth"}')

    def test_ping(self):
        assert decode_command('{"type": "ping"}').type == PING

    @pytest.mark.parametrize("wire,kind", [
        ("user", RoomKind.USER),
        ("team", RoomKind.TEAM),
        ("department", RoomKind.DEPARTMENT),
        ("notifications", RoomKind.NOTIFICATIONS),
        ("chat", RoomKind.CONVERSATION),
        ("tasks", RoomKind.TASKS),
        ("analytics", RoomKind.ANALYTICS),
    ])
    def test_join_kinds(self, wire, kind):
        command = decode_command(json.dumps({"type": f"join-{wire}", "id": "42"}))
        assert command.type == JOIN
        assert command.room_kind == kind
        assert command.room == f"{kind.value}:42"

    def test_leave(self):
        command = decode_command('{"type": "leave-team", "id": "T1"}')
        assert command.type == LEAVE
        assert command.room == "team:T1"

    def test_numeric_id(self):
        assert decode_command('{"type": "join-user", "id": 7}').room == "user:7"

    def test_bytes_frame(self):
        assert decode_command(b'{"type": "ping"}').type == PING

    def test_missing_id(self):
        with pytest.raises(ValueError, match="Missing id"):
            decode_command('{"type": "join-team"}')

    @pytest.mark.parametrize("frame", [
        '{"type": "join-planet", "id": "1"}',
        '{"type": "subscribe"}',
        '{"type": 5}',
        "{}",
    ])
    def test_unknown_type(self, frame):
        with pytest.raises(ValueError, match="Unknown message type"):
            decode_command(frame)

    @pytest.mark.parametrize("frame", ["not json", "[1, 2]", '"ping"'])
    def test_malformed(self, frame):
        with pytest.raises(ValueError):
            decode_command(frame)


class TestEncoders:
    """Test server frame encoding."""

    def test_event(self):
        event = Event(name="task-created", room="team:T1", payload={"_id": "t1"}, timestamp="2026-01-01T00:00:00+00:00")
        assert json.loads(encode_event(event)) == {
            "type": "event",
            "event": "task-created",
            "room": "team:T1",
            "payload": {"_id": "t1"},
            "timestamp": "2026-01-01T00:00:00+00:00",
        }

    def test_auth_response_ok(self):
        data = json.loads(encode_auth_response(True, user_id="U1", role="admin"))
        assert data == {"type": "auth_response", "status": "ok", "user_id": "U1", "role": "admin"}

    def test_auth_response_error(self):
        data = json.loads(encode_auth_response(False, "Invalid or expired token"))
        assert data["status"] == "error"
        assert data["message"] == "Invalid or expired token"

    def test_simple_frames(self):
        assert json.loads(encode_joined("user:U1")) == {"type": "joined", "room": "user:U1"}
        assert json.loads(encode_left("user:U1")) == {"type": "left", "room": "user:U1"}
        assert json.loads(encode_pong()) == {"type": "pong"}
        assert json.loads(encode_error("nope")) == {"type": "error", "message": "nope"}
