"""
Shared fixtures and test doubles.
"""

import asyncio
import json

import pytest

from taskpulse.auth import Principal
from taskpulse.errors import Unauthorized
from taskpulse.store import DocumentStore


class RecordingDispatcher:
    """Publisher that remembers every (room, event name, payload) it is given."""

    def __init__(self):
        self.events = []

    def publish(self, room, name, payload):
        self.events.append((room, getattr(name, "value", name), payload))

    def publish_many(self, rooms, name, payload):
        for room in dict.fromkeys(rooms):
            self.publish(room, name, payload)

    def names(self):
        return [name for _, name, _ in self.events]

    def routed(self):
        return [(room, name) for room, name, _ in self.events]


class FakeTransport:
    """Outbound socket side with an optional per-send delay or failure."""

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.sent = []
        self.closed = False

    async def send(self, text):
        if self.fail:
            raise ConnectionResetError("peer went away")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(text)

    async def close(self):
        self.closed = True

    def frames(self):
        return [json.loads(text) for text in self.sent]


class FakeWebSocket(FakeTransport):
    """Bidirectional connection fed by the test through ``push``; ``None`` ends it."""

    def __init__(self, remote_address=("127.0.0.1", 50000)):
        super().__init__()
        self.remote_address = remote_address
        self._incoming: asyncio.Queue = asyncio.Queue()

    def push(self, message):
        self._incoming.put_nowait(message if message is None or isinstance(message, str) else json.dumps(message))

    async def recv(self):
        message = await self._incoming.get()
        if message is None:
            raise ConnectionResetError("closed")
        return message

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def wait_for_frames(self, count: int, timeout: float = 2.0):
        """Wait until at least ``count`` frames were sent."""
        async def poll():
            while len(self.sent) < count:
                await asyncio.sleep(0.01)
        await asyncio.wait_for(poll(), timeout)
        return self.frames()


class StubUserManager:
    """Resolves fixed tokens to principals."""

    def __init__(self, tokens):
        self.tokens = tokens

    def authenticate(self, token):
        try:
            return self.tokens[token]
        except KeyError:
            raise Unauthorized()


def add_user(store, user_id, role="employee", team=None, department=None, name=None, **extra):
    """Insert a bare user document (no password) and return it."""
    return store.insert("users", {
        "_id": user_id,
        "name": name or user_id,
        "email": f"{user_id.lower()}@example.com",
        "role": role,
        "team": team,
        "department": department,
        "isActive": True,
        **extra,
    })


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / "taskpulse.db")


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def admin():
    return Principal(id="A1", role="admin", email="a1@example.com", name="Admin")


@pytest.fixture
def manager():
    return Principal(id="M1", role="manager", team="T1", department="D1", email="m1@example.com", name="Manager")


@pytest.fixture
def employee():
    return Principal(id="U2", role="employee", team="T1", department="D1", email="u2@example.com", name="Employee")


@pytest.fixture
def outsider():
    return Principal(id="U3", role="employee", team="T2", department="D2", email="u3@example.com", name="Outsider")


@pytest.fixture
def people(store):
    """Users matching the principal fixtures, plus a second T1 employee U4."""
    add_user(store, "A1", role="admin")
    add_user(store, "M1", role="manager", team="T1", department="D1")
    add_user(store, "U2", role="employee", team="T1", department="D1")
    add_user(store, "U3", role="employee", team="T2", department="D2")
    add_user(store, "U4", role="employee", team="T1", department="D1")
    return store
