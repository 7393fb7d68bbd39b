"""
WebSocket server for room subscriptions.

Each connection must authenticate with its first frame, then joins and
leaves rooms. Events reach it through the EventDispatcher; the server
itself only manages the handshake and room membership.

Connection lifecycle:
    connect -> auth handshake (bounded by auth_timeout) -> register handle
    -> command loop -> drop_session on disconnect
"""

import asyncio
from typing import Callable, Optional

import websockets
from loguru import logger

from ..auth import Action, PermissionChecker, Principal, ResourceFacts, ResourceKind, UserManager
from ..auth.permissions import AccessDecision
from ..errors import TaskPulseError, Unauthorized
from . import protocol
from .rooms import RoomKind, RoomRegistry
from .session import QUEUE_SIZE, SEND_TIMEOUT, SessionHandle

AUTH_TIMEOUT = 10.0

ConversationFacts = Callable[[str], ResourceFacts]


class JoinPolicy:
    """
    Decides whether a principal may join a room.

    Personal rooms (user, notifications, tasks, analytics) are open to their
    owner and to managers; team and department rooms to their members and
    to managers; conversation rooms to participants only.
    """

    def __init__(
        self,
        checker: Optional[PermissionChecker] = None,
        conversation_facts: Optional[ConversationFacts] = None,
        open_joins: bool = False,
    ):
        """
        Initialize join policy.

        Args:
            checker: Permission checker (defaults to the standard rule table)
            conversation_facts: Loads the facts of a conversation by id;
                may raise NotFound
            open_joins: Allow every join without checks
        """
        self.checker = checker or PermissionChecker()
        self.conversation_facts = conversation_facts
        self.open_joins = open_joins

    def decide(self, principal: Principal, kind: RoomKind, entity_id: str) -> AccessDecision:
        if self.open_joins:
            return AccessDecision(allowed=True, reason="open_joins")

        if kind in (RoomKind.USER, RoomKind.NOTIFICATIONS, RoomKind.TASKS):
            return self.checker.evaluate(
                principal, Action.READ, ResourceKind.USER, ResourceFacts(owner_id=entity_id)
            )

        if kind == RoomKind.ANALYTICS:
            return self.checker.evaluate(
                principal, Action.READ, ResourceKind.ANALYTICS, ResourceFacts(owner_id=entity_id)
            )

        if kind == RoomKind.TEAM:
            return self.checker.evaluate(
                principal, Action.READ, ResourceKind.TEAM_MEMBERSHIP, ResourceFacts(team=entity_id)
            )

        if kind == RoomKind.DEPARTMENT:
            return self.checker.evaluate(
                principal, Action.READ, ResourceKind.DEPARTMENT, ResourceFacts(department=entity_id)
            )

        if kind == RoomKind.CONVERSATION:
            if self.conversation_facts is None:
                return AccessDecision(allowed=False, reason="conversation_lookup_unavailable")
            try:
                facts = self.conversation_facts(entity_id)
            except TaskPulseError as e:
                return AccessDecision(allowed=False, reason=e.message)
            return self.checker.evaluate(principal, Action.READ, ResourceKind.CONVERSATION, facts)

        return AccessDecision(allowed=False, reason="unknown_room")


class RealtimeServer:
    """Accepts socket connections and manages their room membership."""

    def __init__(
        self,
        user_manager: UserManager,
        registry: RoomRegistry,
        join_policy: Optional[JoinPolicy] = None,
        auth_timeout: float = AUTH_TIMEOUT,
        send_timeout: float = SEND_TIMEOUT,
        queue_size: int = QUEUE_SIZE,
    ):
        self.user_manager = user_manager
        self.registry = registry
        self.join_policy = join_policy or JoinPolicy()
        self.auth_timeout = auth_timeout
        self.send_timeout = send_timeout
        self.queue_size = queue_size

    async def handle_connection(self, websocket) -> None:
        """
        Handle one WebSocket connection until it closes.

        Args:
            websocket: Connection object (``recv``/``send``/``close`` and
                async iteration over incoming frames)
        """
        remote = getattr(websocket, "remote_address", None)
        client_ip = remote[0] if remote else "unknown"

        handle = SessionHandle(
            websocket,
            client_ip=client_ip,
            send_timeout=self.send_timeout,
            queue_size=self.queue_size,
            on_unreachable=self.registry.drop_session,
        )
        handle.start()
        logger.info(f"{handle.label} New WebSocket connection")

        try:
            principal = await self._authenticate(websocket, handle)
            if principal is None:
                await handle.flush()
                await websocket.close()
                return

            handle.principal = principal
            self.registry.register(handle)
            await self._command_loop(websocket, handle)

        except websockets.exceptions.ConnectionClosed:
            logger.info(f"{handle.label} WebSocket connection closed")

        finally:
            self.registry.drop_session(handle)
            await handle.close()
            logger.info(f"{handle.label} Session cleaned up")

    async def _authenticate(self, websocket, handle: SessionHandle) -> Optional[Principal]:
        """
        Perform the authentication handshake.

        Returns:
            Principal if authentication succeeded, None otherwise
        """
        try:
            frame = await asyncio.wait_for(websocket.recv(), timeout=self.auth_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{handle.label} Authentication timeout")
            handle.deliver(protocol.encode_auth_response(False, "Authentication timeout"))
            return None

        try:
            command = protocol.decode_command(frame)
        except ValueError as e:
            logger.warning(f"{handle.label} Invalid handshake frame: {e}")
            handle.deliver(protocol.encode_auth_response(False, "Authentication required"))
            return None

        if command.type != protocol.AUTH:
            logger.warning(f"{handle.label} Expected auth, got {command.type}")
            handle.deliver(protocol.encode_auth_response(False, "Authentication required"))
            return None

        try:
            principal = await asyncio.to_thread(self.user_manager.authenticate, command.token)
        except Unauthorized as e:
            logger.warning(f"{handle.label} Authentication failed")
            handle.deliver(protocol.encode_auth_response(False, e.message))
            return None

        logger.success(f"{handle.label} Authenticated as {principal.email} ({principal.id})")
        handle.deliver(protocol.encode_auth_response(
            True,
            user_id=principal.id,
            name=principal.name,
            role=principal.role,
        ))
        return principal

    async def _command_loop(self, websocket, handle: SessionHandle) -> None:
        async for frame in websocket:
            if handle.closed:
                break

            try:
                command = protocol.decode_command(frame)
            except ValueError as e:
                logger.debug(f"{handle.label} Protocol error: {e}")
                handle.deliver(protocol.encode_error(str(e)))
                continue

            if command.type == protocol.PING:
                handle.deliver(protocol.encode_pong())

            elif command.type == protocol.AUTH:
                handle.deliver(protocol.encode_error("Already authenticated"))

            elif command.type == protocol.JOIN:
                if not await self._join(handle, command):
                    break

            elif command.type == protocol.LEAVE:
                self.registry.leave(handle, command.room)
                handle.deliver(protocol.encode_left(command.room))

    async def _join(self, handle: SessionHandle, command: protocol.Command) -> bool:
        """Authorize and perform a join. Returns False if the session is gone."""
        room = command.room
        decision = await asyncio.to_thread(
            self.join_policy.decide, handle.principal, command.room_kind, command.room_id
        )
        if not decision.allowed:
            logger.warning(f"{handle.label} Join of {room} denied: {decision.reason}")
            handle.deliver(protocol.encode_error(f"Forbidden: cannot join {room}"))
            return True

        # The session may have become unreachable while the policy ran.
        if handle.closed:
            return False

        self.registry.join(handle, room)
        logger.debug(f"{handle.label} Joined {room}")
        handle.deliver(protocol.encode_joined(room))
        return True

    async def serve(self, host: str, port: int, stop: asyncio.Future) -> None:
        """Run the WebSocket server until ``stop`` resolves."""
        async with websockets.serve(self.handle_connection, host, port):
            logger.info(f"WebSocket server running on {host}:{port}")
            await stop

        logger.info("WebSocket server stopped")
