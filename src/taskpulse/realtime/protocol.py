"""
Socket wire protocol.

Every frame is a JSON text message with a ``type`` field.

Client -> server:
    {"type": "auth", "token": "<jwt>"}                 must be the first frame
    {"type": "join-<kind>", "id": "<entity id>"}       join a room
    {"type": "leave-<kind>", "id": "<entity id>"}      leave a room
    {"type": "ping"}

    where <kind> is one of user, team, department, notifications, chat,
    tasks, analytics ("chat" joins a conversation room).

Server -> client:
    {"type": "auth_response", "status": "ok"|"error", ...}
    {"type": "joined", "room": "<key>"}
    {"type": "left", "room": "<key>"}
    {"type": "event", "event": "<name>", "room": "<key>", "payload": ..., "timestamp": "..."}
    {"type": "pong"}
    {"type": "error", "message": "..."}
"""

import json
from dataclasses import dataclass
from typing import Optional

from .events import Event
from .rooms import RoomKind, room_key

# Command types
AUTH = "auth"
JOIN = "join"
LEAVE = "leave"
PING = "ping"

# Wire names of the joinable room kinds
ROOM_COMMANDS = {
    "user": RoomKind.USER,
    "team": RoomKind.TEAM,
    "department": RoomKind.DEPARTMENT,
    "notifications": RoomKind.NOTIFICATIONS,
    "chat": RoomKind.CONVERSATION,
    "tasks": RoomKind.TASKS,
    "analytics": RoomKind.ANALYTICS,
}


@dataclass(frozen=True)
class Command:
    """
    Decoded client frame.

    Attributes:
        type: One of auth, join, leave, ping
        token: Bearer token (auth only)
        room_kind: Target room kind (join/leave only)
        room_id: Target entity id (join/leave only)
    """
    type: str
    token: Optional[str] = None
    room_kind: Optional[RoomKind] = None
    room_id: Optional[str] = None

    @property
    def room(self) -> Optional[str]:
        if self.room_kind is None:
            return None
        return room_key(self.room_kind, self.room_id)


def decode_command(text) -> Command:
    """
    Convert a client text frame to a Command.

    Args:
        text: Raw frame (str or bytes)

    Returns:
        Decoded command

    Raises:
        ValueError: If the frame is not JSON, the type is unknown or
            required fields are missing
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8")

    msg = json.loads(text)
    if not isinstance(msg, dict):
        raise ValueError("Message must be a JSON object")

    msg_type = msg.get("type")

    if msg_type == AUTH:
        token = msg.get("token")
        if not token or not isinstance(token, str):
            raise ValueError("Missing token")
        return Command(type=AUTH, token=token)

    if msg_type == PING:
        return Command(type=PING)

    if isinstance(msg_type, str):
        action, _, kind = msg_type.partition("-")
        if action in (JOIN, LEAVE) and kind in ROOM_COMMANDS:
            room_id = msg.get("id")
            if room_id is None or room_id == "":
                raise ValueError(f"Missing id for {msg_type}")
            return Command(type=action, room_kind=ROOM_COMMANDS[kind], room_id=str(room_id))

    raise ValueError(f"Unknown message type: {msg_type}")


def encode_event(event: Event) -> str:
    return json.dumps(event.to_dict())


def encode_auth_response(ok: bool, message: str = "", **fields) -> str:
    """Encode the handshake result; extra fields describe the principal."""
    body = {"type": "auth_response", "status": "ok" if ok else "error"}
    if message:
        body["message"] = message
    body.update(fields)
    return json.dumps(body)


def encode_joined(room: str) -> str:
    return json.dumps({"type": "joined", "room": room})


def encode_left(room: str) -> str:
    return json.dumps({"type": "left", "room": room})


def encode_pong() -> str:
    return json.dumps({"type": "pong"})


def encode_error(message: str) -> str:
    return json.dumps({"type": "error", "message": message})
