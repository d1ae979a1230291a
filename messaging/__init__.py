"""
Order Service - Messaging Module

Real-time fan-out of order changes to live subscribers:
- SubscriptionRegistry: live connection handles
- BroadcastDispatcher: typed envelopes, best-effort delivery
- QueuedSubscriber: per-subscriber bounded queue + worker thread
"""

from .subscriptions import SubscriberHandle, SubscriptionRegistry
from .broadcast import BroadcastDispatcher, Envelope, EventType
from .delivery import QueuedSubscriber

__all__ = [
    "SubscriberHandle",
    "SubscriptionRegistry",
    "BroadcastDispatcher",
    "Envelope",
    "EventType",
    "QueuedSubscriber",
]
