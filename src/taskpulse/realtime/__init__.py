"""
Real-time room subscriptions and event fan-out.
"""

from .dispatcher import EventDispatcher
from .events import Event, EventName
from .rooms import RoomKind, RoomRegistry, parse_room_key, room_key
from .server import JoinPolicy, RealtimeServer
from .session import SessionHandle

__all__ = [
    "EventDispatcher",
    "Event",
    "EventName",
    "RoomKind",
    "RoomRegistry",
    "parse_room_key",
    "room_key",
    "JoinPolicy",
    "RealtimeServer",
    "SessionHandle",
]
