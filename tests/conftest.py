"""
Pytest configuration and shared fixtures for order service tests.
"""

import sys
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import List

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.structured_log import configure_event_log
from messaging.broadcast import BroadcastDispatcher
from messaging.subscriptions import SubscriptionRegistry
from oms.order_state import NewLineItem
from oms.order_store import OrderStore
from oms.status_transitions import StatusTransitionEngine


class FakeClock:
    """Deterministic clock; each call advances by one second."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(seconds=1)
            return self.now

    def rewind(self, seconds: int) -> None:
        with self._lock:
            self.now = self.now - timedelta(seconds=seconds)


class RecordingSubscriber:
    """In-memory subscriber handle that records every message it is sent."""

    def __init__(self, fail_with: Exception = None):
        self.messages: List[str] = []
        self.open = True
        self.closed_calls = 0
        self.fail_with = fail_with

    @property
    def is_open(self) -> bool:
        return self.open

    def send(self, text: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append(text)

    def close(self) -> None:
        self.open = False
        self.closed_calls += 1

    def decoded(self):
        import json
        return [json.loads(m) for m in self.messages]


@pytest.fixture(autouse=True)
def no_event_log_file():
    """Keep jlog on the console logger only."""
    configure_event_log(None)
    yield
    configure_event_log(None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return OrderStore(engine=StatusTransitionEngine(clock=clock), clock=clock)


@pytest.fixture
def registry():
    return SubscriptionRegistry()


@pytest.fixture
def dispatcher(registry):
    return BroadcastDispatcher(registry)


@pytest.fixture
def wired_store(store, dispatcher):
    """Store whose committed mutations are broadcast through the dispatcher."""
    store.register_callback(dispatcher.publish_order)
    return store


@pytest.fixture
def make_item():
    def _make(product_ref="p1", qty=1, price="10", name=None):
        return NewLineItem(
            product_ref=product_ref,
            name=name or f"Product {product_ref}",
            quantity=qty,
            unit_price=Decimal(str(price)),
        )
    return _make
