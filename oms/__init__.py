"""
Order Management System (OMS)
=============================

Canonical order state and lifecycle rules.

Components:
- Order / LineItem / OrderStatus: Data structures for order tracking
- OrderStore: Thread-safe in-memory registry with derived totals
- StatusTransitionEngine: Status validation and append-once history
"""

from .order_state import LineItem, NewLineItem, Order, OrderStatus, StatusHistoryEntry
from .status_transitions import StatusTransitionEngine, parse_status
from .order_store import OrderStore, ORDER_CREATED, ORDER_UPDATED, STATUS_UPDATED

__all__ = [
    'LineItem',
    'NewLineItem',
    'Order',
    'OrderStatus',
    'StatusHistoryEntry',
    'StatusTransitionEngine',
    'parse_status',
    'OrderStore',
    'ORDER_CREATED',
    'ORDER_UPDATED',
    'STATUS_UPDATED',
]
