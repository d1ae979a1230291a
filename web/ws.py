"""
WebSocket subscriber handle.

Adapts a FastAPI/Starlette WebSocket to the SubscriberHandle protocol. Each
connection gets its own bounded asyncio.Queue and writer task, so a slow
client only ever backs up its own queue.

send() is non-blocking and may be called from any thread: on the event loop
thread it enqueues directly (raising on overflow so the dispatcher drops the
handle); from other threads it hops onto the loop with call_soon_threadsafe
and a full queue closes the handle instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import WebSocket

from core.exceptions import SubscriberClosedError, SubscriberOverflowError

logger = logging.getLogger(__name__)


class WebSocketSubscriber:
    """One live WebSocket connection registered for order events."""

    def __init__(
        self,
        websocket: WebSocket,
        max_pending: int = 100,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.websocket = websocket
        self._loop = loop or asyncio.get_running_loop()
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=max_pending)
        self._closed = False
        self._writer: Optional[asyncio.Task] = None
        self.sent = 0

    @property
    def is_open(self) -> bool:
        return not self._closed

    def start(self) -> None:
        """Start the writer task. Must be called on the event loop."""
        if self._writer is None:
            self._writer = self._loop.create_task(self._drain())

    def send(self, text: str) -> None:
        if self._closed:
            raise SubscriberClosedError("WebSocket subscriber is closed")
        if self._on_loop():
            self._enqueue(text)
        else:
            self._loop.call_soon_threadsafe(self._enqueue_or_close, text)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_loop():
            self._wake_writer()
            return
        try:
            self._loop.call_soon_threadsafe(self._wake_writer)
        except RuntimeError:
            # Loop already closed; nothing left to wake
            pass

    async def aclose(self) -> None:
        """Close and wait for the writer task to finish."""
        self.close()
        if self._writer is not None:
            try:
                await self._writer
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Loop-thread internals
    # ------------------------------------------------------------------

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _enqueue(self, text: str) -> None:
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            self.close()
            raise SubscriberOverflowError(
                "WebSocket subscriber queue is full",
                {"max_pending": self._queue.maxsize},
            )

    def _enqueue_or_close(self, text: str) -> None:
        if self._closed:
            return
        try:
            self._enqueue(text)
        except SubscriberOverflowError as e:
            logger.warning(f"Dropping slow WebSocket subscriber: {e}")

    def _wake_writer(self) -> None:
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            if self._writer is not None:
                self._writer.cancel()

    async def _drain(self) -> None:
        try:
            while True:
                text = await self._queue.get()
                if text is None or self._closed:
                    break
                await self.websocket.send_text(text)
                self.sent += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info(f"WebSocket send failed, closing subscriber: {e}")
        finally:
            self._closed = True
