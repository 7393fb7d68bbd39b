"""
Event fan-out dispatcher.

Publishes events into rooms. A publish snapshots the room's members, encodes
the event once and queues it on every member's session handle. It never
blocks on a transport and never raises into the caller; delivery problems
are logged and handled by the session handles themselves.

Resource services run in worker threads, so publishes arriving off the
event loop are handed to it with ``call_soon_threadsafe``. The loop runs
those callbacks in submission order, which preserves the order of events
published in sequence by one request.
"""

import asyncio
import threading
from typing import Any, Dict, Iterable, Optional

from loguru import logger

from .events import Event
from .protocol import encode_event
from .rooms import RoomRegistry


class EventDispatcher:
    """
    Room-scoped publisher.

    Attributes:
        registry: Room registry consulted for current members
    """

    def __init__(self, registry: RoomRegistry, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.registry = registry
        self._loop = loop
        self._stats_lock = threading.Lock()
        self._published = 0
        self._delivered = 0
        self._failed = 0

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Set the event loop that owns the session handles."""
        self._loop = loop

    def publish(self, room: str, name: Any, payload: Any) -> None:
        """
        Publish an event to every current member of a room.

        Fire-and-forget: returns immediately, never raises.

        Args:
            room: Room key, e.g. ``user:42``
            name: Event name (EventName or plain string)
            payload: JSON-serializable event body
        """
        try:
            event = Event(name=getattr(name, "value", name), room=room, payload=payload)
            text = encode_event(event)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot encode event {name} for {room}: {e}")
            self._count(failed=1)
            return

        self._count(published=1)

        loop = self._loop
        if loop is None or loop.is_closed() or self._on_loop(loop):
            self._fan_out(room, event.name, text)
            return

        try:
            loop.call_soon_threadsafe(self._fan_out, room, event.name, text)
        except RuntimeError as e:
            logger.warning(f"Dropping {event.name} for {room}: event loop unavailable ({e})")
            self._count(failed=1)

    def publish_many(self, rooms: Iterable[str], name: Any, payload: Any) -> None:
        """Publish the same event into several rooms, in order, skipping duplicates."""
        seen = set()
        for room in rooms:
            if room and room not in seen:
                seen.add(room)
                self.publish(room, name, payload)

    @staticmethod
    def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
        try:
            return asyncio.get_running_loop() is loop
        except RuntimeError:
            return False

    def _fan_out(self, room: str, name: str, text: str) -> None:
        members = self.registry.members_of(room)
        if not members:
            logger.debug(f"No members in {room} for {name}")
            return

        delivered = 0
        for handle in members:
            try:
                if handle.deliver(text):
                    delivered += 1
            except Exception as e:
                logger.error(f"Delivery of {name} to {handle!r} failed: {e}")

        self._count(delivered=delivered, failed=len(members) - delivered)
        logger.debug(f"Published {name} to {room}: {delivered}/{len(members)} member(s)")

    def _count(self, published: int = 0, delivered: int = 0, failed: int = 0) -> None:
        with self._stats_lock:
            self._published += published
            self._delivered += delivered
            self._failed += failed

    def stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return {
                "published": self._published,
                "delivered": self._delivered,
                "failed": self._failed,
            }
