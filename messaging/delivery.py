"""
Queued subscriber delivery.

Each QueuedSubscriber owns a bounded queue and a worker thread that drains
it into a sink callable. send() never blocks: it either enqueues or raises
SubscriberOverflowError, which makes the dispatcher drop the subscriber.
A sink failure closes the handle; the registry prunes it on the next
broadcast.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import Callable, Optional

from core.exceptions import SubscriberClosedError, SubscriberOverflowError

logger = logging.getLogger(__name__)

_CLOSE = object()
_ids = itertools.count(1)


class QueuedSubscriber:
    """
    Thread-backed subscriber handle.

    Args:
        sink: Called with each message text, on the worker thread
        max_pending: Queue bound; a full queue counts as a dead subscriber
        name: Label for logs and the worker thread
    """

    def __init__(
        self,
        sink: Callable[[str], None],
        max_pending: int = 100,
        name: Optional[str] = None,
    ):
        self.sink = sink
        self.name = name or f"subscriber-{next(_ids)}"
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=max_pending)
        self._closed = threading.Event()
        self.delivered = 0
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    def send(self, text: str) -> None:
        if self._closed.is_set():
            raise SubscriberClosedError("Subscriber is closed", {"subscriber": self.name})
        try:
            self._queue.put_nowait(text)
        except queue.Full:
            self.close()
            raise SubscriberOverflowError(
                "Subscriber queue is full",
                {"subscriber": self.name, "max_pending": self._queue.maxsize},
            )

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        # Wake the worker; if the queue is full it sees the closed flag on its next get
        try:
            self._queue.put_nowait(_CLOSE)
        except queue.Full:
            pass

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the worker thread to exit (after close())."""
        self._thread.join(timeout)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued message has been handed to the sink."""
        done = threading.Event()

        def _waiter():
            self._queue.join()
            done.set()

        threading.Thread(target=_waiter, daemon=True).start()
        return done.wait(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _CLOSE or self._closed.is_set():
                    break
                try:
                    self.sink(item)  # type: ignore[arg-type]
                    self.delivered += 1
                except Exception as e:
                    logger.warning(f"Subscriber {self.name} sink failed, closing: {e}")
                    self._closed.set()
                    break
            finally:
                self._queue.task_done()
        self._discard_pending()

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return
            self._queue.task_done()
