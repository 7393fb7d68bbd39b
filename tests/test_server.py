"""
Tests for the socket server: handshake, join policy and room commands.
"""

import asyncio

import pytest

from taskpulse.auth import ResourceFacts
from taskpulse.errors import NotFound
from taskpulse.realtime import (
    EventDispatcher,
    EventName,
    JoinPolicy,
    RealtimeServer,
    RoomKind,
    RoomRegistry,
    SessionHandle,
    protocol,
)

from conftest import FakeTransport, FakeWebSocket, StubUserManager


def conversation_facts(conversation_id):
    if conversation_id != "c1":
        raise NotFound("conversation", conversation_id)
    return ResourceFacts(participants=frozenset({"U2", "M1"}), admins=frozenset({"M1"}))


class TestJoinPolicy:
    """Test which rooms a principal may join."""

    @pytest.fixture
    def policy(self):
        return JoinPolicy(conversation_facts=conversation_facts)

    @pytest.mark.parametrize("kind,entity_id,allowed", [
        (RoomKind.USER, "U2", True),
        (RoomKind.USER, "U3", False),
        (RoomKind.NOTIFICATIONS, "U2", True),
        (RoomKind.NOTIFICATIONS, "U3", False),
        (RoomKind.TASKS, "U3", False),
        (RoomKind.ANALYTICS, "U2", True),
        (RoomKind.ANALYTICS, "U3", False),
        (RoomKind.TEAM, "T1", True),
        (RoomKind.TEAM, "T2", False),
        (RoomKind.DEPARTMENT, "D1", True),
        (RoomKind.DEPARTMENT, "D2", False),
        (RoomKind.CONVERSATION, "c1", True),
        (RoomKind.CONVERSATION, "missing", False),
    ])
    def test_employee(self, policy, employee, kind, entity_id, allowed):
        assert policy.decide(employee, kind, entity_id).allowed is allowed

    def test_manager_may_join_any_personal_room(self, policy, manager):
        assert policy.decide(manager, RoomKind.NOTIFICATIONS, "U3").allowed
        assert policy.decide(manager, RoomKind.TEAM, "T2").allowed

    def test_non_participant_denied_conversation(self, policy, outsider):
        assert not policy.decide(outsider, RoomKind.CONVERSATION, "c1").allowed

    def test_conversation_without_resolver(self, employee):
        decision = JoinPolicy().decide(employee, RoomKind.CONVERSATION, "c1")
        assert not decision.allowed
        assert decision.reason == "conversation_lookup_unavailable"

    def test_open_joins(self, outsider):
        policy = JoinPolicy(open_joins=True)
        assert policy.decide(outsider, RoomKind.NOTIFICATIONS, "U2").allowed
        assert policy.decide(outsider, RoomKind.CONVERSATION, "anything").allowed


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def server(registry, employee, manager):
    user_manager = StubUserManager({"tok-u2": employee, "tok-m1": manager})
    return RealtimeServer(
        user_manager,
        registry,
        join_policy=JoinPolicy(conversation_facts=conversation_facts),
        auth_timeout=0.2,
        send_timeout=1.0,
    )


async def open_session(server, token="tok-u2"):
    ws = FakeWebSocket()
    task = asyncio.create_task(server.handle_connection(ws))
    ws.push({"type": "auth", "token": token})
    frames = await ws.wait_for_frames(1)
    assert frames[0]["status"] == "ok"
    return ws, task


async def hang_up(ws, task):
    ws.push(None)
    await asyncio.wait_for(task, timeout=2.0)


class TestHandshake:
    """Test the authentication handshake."""

    async def test_success(self, server, registry):
        ws, task = await open_session(server)

        frame = ws.frames()[0]
        assert frame == {"type": "auth_response", "status": "ok", "user_id": "U2", "name": "Employee", "role": "employee"}
        assert registry.stats()["sessions"] == 1

        await hang_up(ws, task)
        assert registry.stats() == {"sessions": 0, "rooms": 0, "memberships": 0}

    async def test_invalid_token(self, server, registry):
        ws = FakeWebSocket()
        task = asyncio.create_task(server.handle_connection(ws))
        ws.push({"type": "auth", "token": "forged"})
        await asyncio.wait_for(task, timeout=2.0)

        assert ws.frames() == [{"type": "auth_response", "status": "error", "message": "Invalid or expired token"}]
        assert ws.closed
        assert registry.stats()["sessions"] == 0

    async def test_first_frame_must_be_auth(self, server):
        ws = FakeWebSocket()
        task = asyncio.create_task(server.handle_connection(ws))
        ws.push({"type": "join-team", "id": "T1"})
        await asyncio.wait_for(task, timeout=2.0)

        assert ws.frames()[0]["message"] == "Authentication required"
        assert ws.closed

    async def test_timeout(self, server):
        ws = FakeWebSocket()
        await asyncio.wait_for(server.handle_connection(ws), timeout=2.0)

        assert ws.frames() == [{"type": "auth_response", "status": "error", "message": "Authentication timeout"}]
        assert ws.closed


class TestCommands:
    """Test room commands after authentication."""

    async def test_join_and_receive_events(self, server, registry):
        ws, task = await open_session(server)
        dispatcher = EventDispatcher(registry)

        ws.push({"type": "join-notifications", "id": "U2"})
        frames = await ws.wait_for_frames(2)
        assert frames[1] == {"type": "joined", "room": "notifications:U2"}

        dispatcher.publish("notifications:U2", EventName.NEW_NOTIFICATION, {"title": "Hello"})
        frames = await ws.wait_for_frames(3)
        assert frames[2]["event"] == "new-notification"
        assert frames[2]["payload"] == {"title": "Hello"}

        await hang_up(ws, task)
        dispatcher.publish("notifications:U2", EventName.NEW_NOTIFICATION, {"title": "Late"})
        assert len(ws.sent) == 3

    async def test_join_denied(self, server, registry):
        ws, task = await open_session(server)

        ws.push({"type": "join-team", "id": "T2"})
        frames = await ws.wait_for_frames(2)
        assert frames[1] == {"type": "error", "message": "Forbidden: cannot join team:T2"}
        assert registry.members_of("team:T2") == frozenset()

        # The session survives a denied join
        ws.push({"type": "ping"})
        frames = await ws.wait_for_frames(3)
        assert frames[2] == {"type": "pong"}

        await hang_up(ws, task)

    async def test_conversation_room(self, server, registry):
        ws, task = await open_session(server)

        ws.push({"type": "join-chat", "id": "c1"})
        frames = await ws.wait_for_frames(2)
        assert frames[1] == {"type": "joined", "room": "conversation:c1"}

        ws.push({"type": "leave-chat", "id": "c1"})
        frames = await ws.wait_for_frames(3)
        assert frames[2] == {"type": "left", "room": "conversation:c1"}
        assert registry.stats()["rooms"] == 0

        await hang_up(ws, task)

    async def test_protocol_errors_keep_session(self, server):
        ws, task = await open_session(server)

        ws.push("not json at all")
        ws.push({"type": "auth", "token": "tok-u2"})
        ws.push({"type": "ping"})
        frames = await ws.wait_for_frames(4)

        assert frames[1]["type"] == "error"
        assert frames[2] == {"type": "error", "message": "Already authenticated"}
        assert frames[3] == {"type": "pong"}

        await hang_up(ws, task)

    async def test_disconnect_leaves_all_rooms(self, server, registry):
        ws, task = await open_session(server, token="tok-m1")
        for room in ({"type": "join-team", "id": "T1"}, {"type": "join-user", "id": "M1"}):
            ws.push(room)
        await ws.wait_for_frames(3)
        assert registry.stats()["memberships"] == 2

        await hang_up(ws, task)
        assert registry.stats() == {"sessions": 0, "rooms": 0, "memberships": 0}

    async def test_join_racing_unreachable_session(self, registry, employee):
        """A session lost while its join is being authorized never ends up in the room."""
        handle = SessionHandle(FakeTransport(), on_unreachable=registry.drop_session)
        handle.principal = employee
        registry.register(handle)

        class LosingPolicy(JoinPolicy):
            def decide(self, principal, kind, entity_id):
                handle.closed = True
                registry.drop_session(handle)
                return super().decide(principal, kind, entity_id)

        server = RealtimeServer(StubUserManager({}), registry, join_policy=LosingPolicy())
        command = protocol.decode_command('{"type": "join-team", "id": "T1"}')

        assert await server._join(handle, command) is False
        assert registry.members_of("team:T1") == frozenset()
        assert registry.rooms_of(handle) == frozenset()
        assert handle.transport.sent == []
