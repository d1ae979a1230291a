from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


_CENTS = Decimal("0.01")

# Amount limits; they keep every total quantizable to cents in the default
# 28-digit decimal context
MAX_QUANTITY = 1_000_000
MAX_UNIT_PRICE = Decimal("1000000000")
MAX_ORDER_TOTAL = Decimal("1000000000000000")


class OrderStatus(str, Enum):
    """Order lifecycle, in lifecycle order. CANCELLED is the side state."""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Forward sequence; CANCELLED is reachable from any non-terminal state
LIFECYCLE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)
TERMINAL_STATES: frozenset[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
INITIAL_STATUS = LIFECYCLE[0]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any) -> Decimal:
    """Coerce ints/strings/floats to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def _money_json(value: Decimal) -> float:
    return float(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


@dataclass
class NewLineItem:
    """Caller-supplied item for add_item() / create(); ids are assigned by the store."""
    product_ref: str
    name: str
    quantity: int
    unit_price: Decimal


@dataclass
class LineItem:
    id: int
    product_ref: str
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productRef": self.product_ref,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": _money_json(self.unit_price),
            "subtotal": _money_json(self.subtotal),
        }


@dataclass
class StatusHistoryEntry:
    status: OrderStatus
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "timestamp": self.timestamp.isoformat()}


@dataclass
class Order:
    id: int
    owner: str
    created_at: datetime
    updated_at: datetime
    status: OrderStatus = INITIAL_STATUS
    items: List[LineItem] = field(default_factory=list)
    status_history: List[StatusHistoryEntry] = field(default_factory=list)
    total: Decimal = Decimal("0")
    item_count: int = 0

    def recompute(self) -> None:
        """Derive total and item_count from the current items."""
        self.total = sum((item.subtotal for item in self.items), Decimal("0"))
        self.item_count = sum(item.quantity for item in self.items)

    def find_item(self, item_id: int) -> Optional[LineItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_product(self, product_ref: str) -> Optional[LineItem]:
        for item in self.items:
            if item.product_ref == product_ref:
                return item
        return None

    def history_for(self, status: OrderStatus) -> Optional[StatusHistoryEntry]:
        for entry in self.status_history:
            if entry.status == status:
                return entry
        return None

    def touch(self, now: datetime) -> datetime:
        """Bump updated_at, never moving it backwards. Returns the stamp used."""
        if now < self.updated_at:
            now = self.updated_at
        self.updated_at = now
        return now

    def snapshot(self) -> "Order":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "items": [item.to_dict() for item in self.items],
            "status": self.status.value,
            "total": _money_json(self.total),
            "itemCount": self.item_count,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "statusHistory": [entry.to_dict() for entry in self.status_history],
        }
