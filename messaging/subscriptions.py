"""
Subscription Registry.

Tracks the live subscriber handles that order events are fanned out to.
A handle represents one open connection and only needs to expose:

    send(text)   enqueue a message, never blocking
    close()      release the connection
    is_open      whether the connection is still usable

The registry carries no business data. Iteration works on a snapshot taken
under the lock, so handles may register/unregister while a broadcast is in
progress. Closed handles are pruned when iteration reaches them.

register() and unregister() do no I/O, so they are safe to call while the
order store lock is held.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class SubscriberHandle(Protocol):
    """Transport-side connection handle."""

    @property
    def is_open(self) -> bool: ...

    def send(self, text: str) -> None: ...

    def close(self) -> None: ...


class SubscriptionRegistry:
    """Thread-safe set of live subscriber handles."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: List[SubscriberHandle] = []

    def register(self, handle: SubscriberHandle) -> bool:
        """Add a handle. Returns False if it was already registered."""
        with self._lock:
            if any(h is handle for h in self._handles):
                return False
            self._handles.append(handle)
        return True

    def unregister(self, handle: SubscriberHandle) -> bool:
        """Remove a handle. Safe to call on a handle that is already gone."""
        with self._lock:
            for i, h in enumerate(self._handles):
                if h is handle:
                    del self._handles[i]
                    break
            else:
                return False
        return True

    def for_each_live(self, fn: Callable[[SubscriberHandle], None]) -> int:
        """
        Call ``fn`` for every open handle.

        Handles that report closed are pruned instead. Exceptions raised by
        ``fn`` propagate; callers that need per-handle isolation catch inside
        ``fn``.

        Returns:
            Number of open handles visited
        """
        visited = 0
        for handle in self.snapshot():
            if not handle.is_open:
                if self.unregister(handle):
                    logger.debug("Pruned closed subscriber during iteration")
                continue
            fn(handle)
            visited += 1
        return visited

    def snapshot(self) -> List[SubscriberHandle]:
        with self._lock:
            return list(self._handles)

    def close_all(self) -> int:
        """Close and drop every handle. Used at shutdown."""
        with self._lock:
            handles = self._handles
            self._handles = []
        for handle in handles:
            try:
                handle.close()
            except Exception as e:
                logger.warning(f"Error closing subscriber: {e}")
        return len(handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return any(h is handle for h in self._handles)
