"""
Socket session handle.

One handle per live connection. Outbound frames go through a bounded queue
drained by a dedicated writer task, so a slow client only ever delays
itself. A write that times out or fails, or a full queue, marks the
session unreachable: the owner is told through ``on_unreachable`` and the
transport is closed.
"""

import asyncio
import uuid
from typing import Callable, Optional

from loguru import logger

from ..auth.models import Principal

SEND_TIMEOUT = 5.0
QUEUE_SIZE = 256


class SessionHandle:
    """
    Outbound side of one socket connection.

    The transport is any object with ``async send(str)`` and ``async close()``.
    ``deliver`` must be called from the event loop thread that started the
    handle.
    """

    def __init__(
        self,
        transport,
        client_ip: str = "unknown",
        send_timeout: float = SEND_TIMEOUT,
        queue_size: int = QUEUE_SIZE,
        on_unreachable: Optional[Callable[["SessionHandle"], None]] = None,
    ):
        self.handle_id = uuid.uuid4().hex[:12]
        self.transport = transport
        self.client_ip = client_ip
        self.send_timeout = send_timeout
        self.on_unreachable = on_unreachable
        self.principal: Optional[Principal] = None
        self.closed = False

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        user = self.principal.id if self.principal else None
        return f"SessionHandle({self.handle_id}, user={user})"

    @property
    def label(self) -> str:
        return f"[{self.client_ip}/{self.handle_id}]"

    def start(self) -> None:
        """Start the writer task on the running loop."""
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._drain_loop())

    def deliver(self, text: str) -> bool:
        """
        Queue one frame for sending without waiting.

        Returns:
            True if the frame was queued, False if the session is closed or
            its queue overflowed (which also marks it unreachable)
        """
        if self.closed:
            return False

        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            self._mark_unreachable("outbound queue full")
            return False
        return True

    async def _drain_loop(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await asyncio.wait_for(self.transport.send(text), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                self._queue.task_done()
                self._mark_unreachable(f"send timed out after {self.send_timeout}s")
                return
            except asyncio.CancelledError:
                self._queue.task_done()
                raise
            except Exception as e:
                self._queue.task_done()
                self._mark_unreachable(f"send failed: {e}")
                return
            self._queue.task_done()

    def _mark_unreachable(self, reason: str) -> None:
        if self.closed:
            return

        logger.warning(f"{self.label} Session unreachable: {reason}")
        self.closed = True
        self._discard_pending()

        if self.on_unreachable:
            try:
                self.on_unreachable(self)
            except Exception as e:
                logger.error(f"{self.label} Unreachable callback failed: {e}")

        asyncio.get_running_loop().create_task(self._close_transport())

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"{self.label} Error closing transport: {e}")

    async def flush(self) -> None:
        """Wait until every queued frame has been written (or discarded)."""
        if self._writer is None or self._writer.done():
            return
        await self._queue.join()

    async def close(self) -> None:
        """Stop the writer task. Queued frames are discarded."""
        self.closed = True
        self._discard_pending()

        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
