"""
Order Service - FastAPI Application
===================================

Thin HTTP/WebSocket adapter over the order core. Routes parse arguments,
call OrderStore, and map the core error taxonomy to status codes:

    NotFoundError   -> 404
    ValidationError -> 400
    ConflictError   -> 409

The WebSocket endpoint attaches one WebSocketSubscriber per connection; it
receives an ``initial-orders`` seed and then every order event.

Usage:
    from web.app import create_app
    app = create_app(load_validated_settings())
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from config.settings_schema import Settings, load_validated_settings
from core.exceptions import (
    NotFoundError,
    OrderNotFoundError,
    OrderServiceError,
    get_error_code,
    http_status_for,
)
from core.structured_log import configure_event_log
from messaging.broadcast import BroadcastDispatcher
from messaging.subscriptions import SubscriptionRegistry
from oms.order_store import OrderStore
from oms.status_transitions import StatusTransitionEngine
from web.schemas import CreateOrderIn, LineItemIn, StatusIn, UpdateQuantityIn
from web.ws import WebSocketSubscriber

logger = logging.getLogger(__name__)


@dataclass
class OrderServices:
    """Process-wide collaborators, built once and shared by every request."""
    settings: Settings
    store: OrderStore
    registry: SubscriptionRegistry
    dispatcher: BroadcastDispatcher


def build_services(settings: Settings) -> OrderServices:
    """Wire store, transition engine, registry and dispatcher from settings."""
    engine = StatusTransitionEngine(strict_forward=settings.store.strict_forward_transitions)
    store = OrderStore(engine=engine, one_order_per_owner=settings.store.one_order_per_owner)
    registry = SubscriptionRegistry()
    dispatcher = BroadcastDispatcher(registry)
    store.register_callback(dispatcher.publish_order)
    return OrderServices(settings=settings, store=store, registry=registry, dispatcher=dispatcher)


def _services(request: Request) -> OrderServices:
    return request.app.state.services


router = APIRouter()


# =============================================================================
# REST ROUTES
# =============================================================================

@router.get("/")
async def read_root() -> Dict[str, Any]:
    return {
        "message": "Order Management API is running",
        "endpoints": ["/orders", "/orders/{id}", "/orders/{id}/items", "/orders/{id}/status", "/ws"],
    }


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    services = _services(request)
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "orders": services.store.count(),
        "subscribers": len(services.registry),
    }


@router.post("/orders", status_code=201)
async def create_order(request: Request, body: CreateOrderIn) -> Dict[str, Any]:
    store = _services(request).store
    order = store.create(body.owner, [item.to_new_item() for item in body.items])
    return order.to_dict()


@router.get("/orders")
async def list_orders(request: Request) -> List[Dict[str, Any]]:
    return [order.to_dict() for order in _services(request).store.list_orders()]


@router.get("/orders/owner/{owner}")
async def get_order_by_owner(request: Request, owner: str) -> Dict[str, Any]:
    order = _services(request).store.get_by_owner(owner)
    if order is None:
        raise NotFoundError(f"No order for owner {owner}", {"owner": owner})
    return order.to_dict()


@router.get("/orders/{order_id}")
async def get_order(request: Request, order_id: int) -> Dict[str, Any]:
    order = _services(request).store.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order.to_dict()


@router.post("/orders/{order_id}/items")
async def add_item(request: Request, order_id: int, body: LineItemIn) -> Dict[str, Any]:
    order = _services(request).store.add_item(order_id, body.to_new_item())
    return order.to_dict()


@router.patch("/orders/{order_id}/items/{item_id}")
async def update_item_quantity(
    request: Request, order_id: int, item_id: int, body: UpdateQuantityIn
) -> Dict[str, Any]:
    order = _services(request).store.update_item_quantity(order_id, item_id, body.quantity)
    return order.to_dict()


@router.delete("/orders/{order_id}/items/{item_id}")
async def remove_item(request: Request, order_id: int, item_id: int) -> Dict[str, Any]:
    order = _services(request).store.remove_item(order_id, item_id)
    return order.to_dict()


@router.delete("/orders/{order_id}/items")
async def clear_order(request: Request, order_id: int) -> Dict[str, Any]:
    if not _services(request).store.clear(order_id):
        raise OrderNotFoundError(order_id)
    return {"message": "Order cleared", "id": order_id}


@router.put("/orders/{order_id}/status")
async def update_status(request: Request, order_id: int, body: StatusIn) -> Dict[str, Any]:
    order = _services(request).store.transition_status(order_id, body.status)
    return order.to_dict()


@router.delete("/orders/{order_id}")
async def delete_order(request: Request, order_id: int) -> Dict[str, Any]:
    if not _services(request).store.delete(order_id):
        raise OrderNotFoundError(order_id)
    return {"message": "Order deleted successfully", "id": order_id}


# =============================================================================
# WEBSOCKET
# =============================================================================

@router.websocket("/ws")
async def order_updates(websocket: WebSocket):
    """Stream order events: one initial-orders seed, then live updates."""
    services: OrderServices = websocket.app.state.services
    await websocket.accept()

    subscriber = WebSocketSubscriber(
        websocket, max_pending=services.settings.broadcast.subscriber_queue_size
    )
    try:
        subscriber.start()
        services.dispatcher.attach(subscriber, services.store)
        # Clients do not send anything meaningful; reading detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        services.dispatcher.detach(subscriber)
        await subscriber.aclose()


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

async def _handle_service_error(request: Request, exc: OrderServiceError) -> JSONResponse:
    status = http_status_for(exc)
    if status >= 500:
        logger.error(f"Unhandled service error: {exc}")
    return JSONResponse(
        status_code=status,
        content={
            "detail": {
                "error_code": get_error_code(exc),
                "message": exc.message,
                "context": exc.context,
            }
        },
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app with its own store, registry and dispatcher."""
    settings = settings or load_validated_settings()
    configure_event_log(settings.logging.event_log_path)
    services = build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        closed = services.registry.close_all()
        logger.info(f"Order service shutting down, closed {closed} subscribers")

    app = FastAPI(
        title="Order Tracking Service",
        description="Order lifecycle tracking with real-time WebSocket updates.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.add_exception_handler(OrderServiceError, _handle_service_error)
    app.include_router(router)
    return app
