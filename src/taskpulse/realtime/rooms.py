"""
Room registry.

Tracks which socket sessions are joined to which rooms. A room exists only
while it has at least one member; the last leave removes it. Every mutation
runs under one lock, and membership reads return snapshots.
"""

import threading
from enum import Enum
from typing import Dict, FrozenSet, Hashable, Set, Tuple

from loguru import logger


class RoomKind(str, Enum):
    USER = "user"
    TEAM = "team"
    DEPARTMENT = "department"
    CONVERSATION = "conversation"
    NOTIFICATIONS = "notifications"
    TASKS = "tasks"
    ANALYTICS = "analytics"


def room_key(kind: RoomKind, entity_id: str) -> str:
    """Build a room key such as ``team:42``."""
    if not entity_id:
        raise ValueError(f"Room id required for {kind.value} room")
    return f"{RoomKind(kind).value}:{entity_id}"


def parse_room_key(key: str) -> Tuple[RoomKind, str]:
    """
    Split a room key into its kind and id.

    Raises:
        ValueError: If the key is malformed or the kind unknown
    """
    kind, sep, entity_id = key.partition(":")
    if not sep or not entity_id:
        raise ValueError(f"Malformed room key: {key}")
    return RoomKind(kind), entity_id


class RoomRegistry:
    """
    Session-to-room membership.

    Members are opaque hashable handles (in practice SessionHandle objects).
    A handle is a member of a room exactly when its latest join of that room
    has not been followed by a leave of it or a drop of the handle. Keeping
    closed handles out is up to the caller (see RealtimeServer._join).
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._rooms: Dict[str, Set[Hashable]] = {}
        self._memberships: Dict[Hashable, Set[str]] = {}

    def register(self, handle: Hashable) -> None:
        """Count a newly connected handle as a session before it joins anything."""
        with self._lock:
            self._memberships.setdefault(handle, set())

    def join(self, handle: Hashable, room: str) -> None:
        """
        Add a handle to a room, creating the room if needed.

        Joining a room twice is the same as joining once. An unknown or
        previously dropped handle is tracked again from this join on.
        """
        with self._lock:
            self._memberships.setdefault(handle, set()).add(room)
            self._rooms.setdefault(room, set()).add(handle)

    def leave(self, handle: Hashable, room: str) -> None:
        """Remove a handle from a room; a no-op if it was not a member."""
        with self._lock:
            joined = self._memberships.get(handle)
            if joined is not None:
                joined.discard(room)
            self._discard(handle, room)

    def drop_session(self, handle: Hashable) -> None:
        """Remove a handle from every room it joined. Safe to call repeatedly."""
        with self._lock:
            joined = self._memberships.pop(handle, None)
            if not joined:
                return
            for room in joined:
                self._discard(handle, room)

        logger.debug(f"Dropped session from {len(joined)} room(s)")

    def _discard(self, handle: Hashable, room: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(handle)
        if not members:
            del self._rooms[room]

    def members_of(self, room: str) -> FrozenSet[Hashable]:
        """Snapshot of the handles currently joined to a room."""
        with self._lock:
            return frozenset(self._rooms.get(room, ()))

    def rooms_of(self, handle: Hashable) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._memberships.get(handle, ()))

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "sessions": len(self._memberships),
                "rooms": len(self._rooms),
                "memberships": sum(len(members) for members in self._rooms.values()),
            }

    def rooms_by_kind(self) -> Dict[str, int]:
        """Number of live rooms per room kind."""
        with self._lock:
            keys = list(self._rooms)

        counts: Dict[str, int] = {}
        for key in keys:
            kind, _ = parse_room_key(key)
            counts[kind.value] = counts.get(kind.value, 0) + 1
        return counts
