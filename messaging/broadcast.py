"""
Order Event Broadcast.

Turns committed order mutations into typed envelopes and pushes them to
every live subscriber.

Wire contract:
    {"type": "order-created" | "order-updated" | "status-updated", "order": {...}}
    {"type": "initial-orders", "orders": [{...}, ...]}

Delivery is at-most-once and best-effort. A handle whose send() fails is
unregistered and closed; the failure never reaches the mutation caller and
there is no retry or replay.

Usage:
    store = OrderStore()
    registry = SubscriptionRegistry()
    dispatcher = BroadcastDispatcher(registry)
    store.register_callback(dispatcher.publish_order)

    dispatcher.attach(handle, store)  # seeds the handle with initial-orders
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from core.structured_log import jlog
from messaging.subscriptions import SubscriberHandle, SubscriptionRegistry

if TYPE_CHECKING:
    from oms.order_state import Order
    from oms.order_store import OrderStore

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Broadcast message types."""
    ORDER_CREATED = "order-created"
    ORDER_UPDATED = "order-updated"
    STATUS_UPDATED = "status-updated"
    INITIAL_ORDERS = "initial-orders"


@dataclass(frozen=True)
class Envelope:
    """Immutable message envelope; serialized once per publish."""
    type: EventType
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class BroadcastDispatcher:
    """Fans envelopes out to every live handle in a SubscriptionRegistry."""

    def __init__(self, registry: SubscriptionRegistry):
        self.registry = registry
        self.published = 0
        self.failures = 0

    def publish(self, event_type: Union[EventType, str], payload: Mapping[str, Any]) -> int:
        """
        Build one envelope and send it to every live subscriber.

        Returns:
            Number of handles that accepted the message
        """
        envelope = Envelope(type=EventType(event_type), data=payload)
        text = envelope.to_json()
        delivered = 0

        def _visit(handle: SubscriberHandle) -> None:
            nonlocal delivered
            error = self._send(handle, text)
            if error is None:
                delivered += 1
            else:
                self._prune(handle, envelope.type, error)

        self.registry.for_each_live(_visit)
        self.published += 1
        return delivered

    def publish_order(self, event_type: Union[EventType, str], order: "Order") -> int:
        """OrderStore listener: publish a single-order event."""
        return self.publish(event_type, {"order": order.to_dict()})

    def attach(self, handle: SubscriberHandle, store: "OrderStore") -> int:
        """
        Register a handle and seed it with the current orders.

        store.exclusive() guarantees every earlier mutation has already been
        dispatched and none can commit until the seed is enqueued, so the
        handle receives each mutation exactly once: inside the seed or as a
        later event. Only the snapshot, registration and enqueue happen under
        the store lock; pruning and logging happen after it is released.

        Returns:
            Number of orders in the seed
        """
        with store.exclusive():
            orders = store.list_orders()
            seed = Envelope(
                type=EventType.INITIAL_ORDERS,
                data={"orders": [order.to_dict() for order in orders]},
            ).to_json()
            self.registry.register(handle)
            error = self._send(handle, seed)

        if error is not None:
            self._prune(handle, EventType.INITIAL_ORDERS, error)
        else:
            jlog("subscriber_attached", orders=len(orders), subscribers=len(self.registry))
        return len(orders)

    def detach(self, handle: SubscriberHandle) -> bool:
        removed = self.registry.unregister(handle)
        if removed:
            jlog("subscriber_detached", subscribers=len(self.registry))
        return removed

    def _send(self, handle: SubscriberHandle, text: str) -> Optional[Exception]:
        """Enqueue on the handle; a failing handle is unregistered at once."""
        try:
            handle.send(text)
            return None
        except Exception as e:
            self.failures += 1
            self.registry.unregister(handle)
            return e

    def _prune(self, handle: SubscriberHandle, event_type: EventType, error: Exception) -> None:
        try:
            handle.close()
        except Exception as close_error:
            logger.debug(f"Error closing failed subscriber: {close_error}")
        jlog("subscriber_pruned", level="WARNING", event_type=event_type.value, error=str(error))
