"""
Application wiring and lifecycle.

Builds every component once and runs the HTTP API and the WebSocket server
on the same event loop until SIGINT/SIGTERM.
"""

import asyncio
import signal
from typing import Optional

from aiohttp import web
from loguru import logger

from .api import create_app
from .auth import JWTHandler, PermissionChecker, UserDatabase, UserManager
from .config import Settings
from .realtime import EventDispatcher, JoinPolicy, RealtimeServer, RoomRegistry
from .services import (
    AnalyticsService,
    ChatService,
    DepartmentService,
    Estimator,
    FileService,
    KpiService,
    NotificationService,
    RoleService,
    TaskService,
    TeamService,
    UserService,
)
from .store import DocumentStore

SESSION_CLEANUP_INTERVAL = 3600.0


class TaskPulse:
    """
    Component container.

    Services share one store, one dispatcher and one permission checker.
    """

    def __init__(self, settings: Settings, estimator: Optional[Estimator] = None):
        self.settings = settings

        self.store = DocumentStore(settings.db_path)
        self.users = UserDatabase(self.store)
        self.jwt = JWTHandler(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            access_expire_minutes=settings.access_token_expire_minutes,
            refresh_expire_days=settings.refresh_token_expire_days,
        )
        self.user_manager = UserManager(self.users, self.jwt)

        self.registry = RoomRegistry()
        self.dispatcher = EventDispatcher(self.registry)
        self.checker = PermissionChecker()

        self.tasks = TaskService(self.store, self.dispatcher, self.checker)
        self.notifications = NotificationService(self.store, self.dispatcher, self.checker)
        self.chat = ChatService(self.store, self.dispatcher, self.checker)
        self.team = TeamService(self.store, self.dispatcher, self.checker)
        self.files = FileService(self.store, self.dispatcher, self.checker)
        self.kpis = KpiService(self.store, self.dispatcher, self.checker)
        self.roles = RoleService(self.store, self.dispatcher, self.checker)
        self.departments = DepartmentService(self.store, self.dispatcher, self.checker)
        self.profiles = UserService(self.store, self.dispatcher, self.checker)
        self.analytics = AnalyticsService(self.store, self.dispatcher, self.checker, estimator)

        if settings.open_room_joins:
            logger.warning("Room joins are not authorized (open_room_joins enabled)")

        self.realtime = RealtimeServer(
            self.user_manager,
            self.registry,
            join_policy=JoinPolicy(
                self.checker,
                conversation_facts=self.chat.facts_for_conversation,
                open_joins=settings.open_room_joins,
            ),
            auth_timeout=settings.auth_timeout,
            send_timeout=settings.send_timeout,
            queue_size=settings.outbound_queue_size,
        )


async def _session_janitor(users: UserDatabase, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(users.cleanup_expired_sessions)
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}")


async def run(settings: Settings) -> None:
    """Run the HTTP and WebSocket servers until a shutdown signal arrives."""
    logger.info("Starting TaskPulse")
    logger.info(f"HTTP: {settings.http_host}:{settings.http_port}")
    logger.info(f"WebSocket: {settings.ws_host}:{settings.ws_port}")

    container = TaskPulse(settings)

    loop = asyncio.get_running_loop()
    container.dispatcher.bind_loop(loop)
    stop = loop.create_future()

    def request_stop():
        if not stop.done():
            stop.set_result(None)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        loop.call_soon_threadsafe(request_stop)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    runner = web.AppRunner(create_app(container))
    await runner.setup()
    site = web.TCPSite(runner, settings.http_host, settings.http_port)
    await site.start()
    logger.info(f"HTTP API running on {settings.http_host}:{settings.http_port}")

    janitor = asyncio.create_task(_session_janitor(container.users, SESSION_CLEANUP_INTERVAL))

    try:
        await container.realtime.serve(settings.ws_host, settings.ws_port, stop)
    finally:
        janitor.cancel()
        await runner.cleanup()

    logger.info("Server stopped")
