"""
Order Service - Web Module.

Thin FastAPI adapter over the order core:
- REST routes for order and item mutations
- /ws WebSocket stream of order events
"""

from .app import OrderServices, build_services, create_app
from .ws import WebSocketSubscriber

__all__ = [
    'OrderServices',
    'build_services',
    'create_app',
    'WebSocketSubscriber',
]
