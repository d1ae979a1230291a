"""
In-memory Order Store.

Holds canonical order state and serializes every read and write through a
single re-entrant lock, so callers only ever observe fully committed orders.

Mutations are copy-on-write: the stored order is copied, the change is
applied and validated on the copy, totals are recomputed, and only then is
the copy swapped in. A failure at any step leaves the store untouched.

Listeners registered with register_callback() receive (event_type, order)
after the lock has been released. Committed events are queued in commit
order while the lock is held and drained by one thread at a time, so
listeners see events in exactly the order the mutations committed.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import (
    DuplicateOwnerOrderError,
    ItemNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from core.structured_log import jlog
from oms.order_state import (
    INITIAL_STATUS,
    MAX_ORDER_TOTAL,
    MAX_QUANTITY,
    MAX_UNIT_PRICE,
    LineItem,
    NewLineItem,
    Order,
    StatusHistoryEntry,
    to_money,
    utcnow,
)
from oms.status_transitions import StatusLike, StatusTransitionEngine

logger = logging.getLogger(__name__)

# Event names handed to listeners; they match the broadcast wire types
ORDER_CREATED = "order-created"
ORDER_UPDATED = "order-updated"
STATUS_UPDATED = "status-updated"

OrderListener = Callable[[str, Order], None]


def _validate_new_item(item: NewLineItem) -> NewLineItem:
    """Return a normalized copy of ``item`` or raise ValidationError."""
    errors: List[str] = []
    product_ref = item.product_ref.strip() if isinstance(item.product_ref, str) else ""
    if not product_ref:
        errors.append("productRef is required and must be a non-empty string")
    if not isinstance(item.name, str) or not item.name.strip():
        errors.append("name is required and must be a non-empty string")
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity < 1:
        errors.append("quantity must be an integer of at least 1")
    elif item.quantity > MAX_QUANTITY:
        errors.append(f"quantity must not exceed {MAX_QUANTITY}")

    unit_price: Optional[Decimal] = None
    try:
        unit_price = to_money(item.unit_price)
    except (InvalidOperation, TypeError, ValueError):
        errors.append("unitPrice must be a number")
    else:
        if not unit_price.is_finite() or unit_price <= 0:
            errors.append("unitPrice must be greater than 0")
        elif unit_price > MAX_UNIT_PRICE:
            errors.append(f"unitPrice must not exceed {MAX_UNIT_PRICE}")

    if errors:
        raise ValidationError("Invalid line item", {"errors": errors})
    return NewLineItem(
        product_ref=product_ref,
        name=item.name.strip(),
        quantity=item.quantity,
        unit_price=unit_price,
    )


def _check_limits(order: Order) -> None:
    """Reject a recomputed draft whose amounts exceed the store limits."""
    for line in order.items:
        if line.quantity > MAX_QUANTITY:
            raise ValidationError(
                f"quantity must not exceed {MAX_QUANTITY}",
                {"order_id": order.id, "product_ref": line.product_ref, "quantity": line.quantity},
            )
    if order.total > MAX_ORDER_TOTAL:
        raise ValidationError(
            f"order total must not exceed {MAX_ORDER_TOTAL}",
            {"order_id": order.id, "total": str(order.total)},
        )


class OrderStore:
    """
    Thread-safe, in-memory registry of orders.

    Options:
        one_order_per_owner: reject create() for an owner that already has an
            order in the store (off by default)
    """

    def __init__(
        self,
        engine: Optional[StatusTransitionEngine] = None,
        one_order_per_owner: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._clock = clock or utcnow
        self.engine = engine or StatusTransitionEngine(clock=self._clock)
        self.one_order_per_owner = one_order_per_owner

        # Thread-safe internals
        self._lock = threading.RLock()
        self._orders: Dict[int, Order] = {}  # insertion ordered
        self._next_order_id = 1
        self._next_item_id = 1
        self._callbacks: List[OrderListener] = []

        # Committed, not yet dispatched events (guarded by _lock)
        self._pending: Deque[Tuple[str, Order]] = deque()
        # Held by whichever thread is draining _pending
        self._dispatch_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_callback(self, callback: OrderListener) -> None:
        """Register a listener for committed mutations."""
        with self._lock:
            self._callbacks.append(callback)

    def _dispatch_pending(self) -> None:
        """Hand queued events to the listeners, oldest first."""
        with self._dispatch_lock:
            while True:
                with self._lock:
                    if not self._pending:
                        return
                    event_type, order = self._pending.popleft()
                    callbacks = list(self._callbacks)
                for callback in callbacks:
                    try:
                        callback(event_type, order)
                    except Exception as e:
                        logger.error(f"Order listener error on {event_type} for order {order.id}: {e}")

    @contextmanager
    def _mutation(self) -> Iterator[List[Tuple[str, Order]]]:
        """
        Run a mutation under the lock and dispatch its events once released.

        The body appends (event_type, snapshot) pairs to the yielded list.
        They are queued only if the body completes; if it raises, nothing is
        dispatched.
        """
        events: List[Tuple[str, Order]] = []
        with self._lock:
            yield events
            self._pending.extend(events)
        self._dispatch_pending()

    @contextmanager
    def exclusive(self) -> Iterator["OrderStore"]:
        """
        Hold the store lock with every committed event already dispatched.

        No mutation can commit, and no event can be dispatched, until the
        block exits. A listener registered inside the block therefore sees
        exactly the mutations committed after it. Only non-blocking work
        belongs inside (snapshotting, enqueueing).
        """
        with self._dispatch_lock:
            while True:
                self._dispatch_pending()
                self._lock.acquire()
                if not self._pending:
                    break
                self._lock.release()
            try:
                yield self
            finally:
                self._lock.release()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, order_id: int) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.snapshot() if order else None

    def get_by_owner(self, owner: str) -> Optional[Order]:
        """Return the owner's oldest live order, or None."""
        owner = owner.strip() if isinstance(owner, str) else owner
        with self._lock:
            order = self._find_by_owner(owner)
            return order.snapshot() if order else None

    def list_orders(self) -> List[Order]:
        """Snapshot of every order, in insertion order."""
        with self._lock:
            return [order.snapshot() for order in self._orders.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._orders)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, owner: str, items: Optional[Iterable[NewLineItem]] = None) -> Order:
        """
        Create an order in the initial status, optionally seeded with items.

        The owner reference is stored with surrounding whitespace stripped.

        Raises:
            ValidationError: empty owner, invalid seed item, amounts over limit
            ConflictError: one-order-per-owner is enabled and owner has an order
        """
        if not isinstance(owner, str) or not owner.strip():
            raise ValidationError("owner is required and must be a non-empty string", {"owner": owner})
        owner = owner.strip()
        seed = [_validate_new_item(item) for item in (items or [])]

        with self._mutation() as events:
            if self.one_order_per_owner:
                existing = self._find_by_owner(owner)
                if existing is not None:
                    raise DuplicateOwnerOrderError(owner, existing.id)

            now = self._clock()
            order = Order(
                id=self._next_order_id,
                owner=owner,
                created_at=now,
                updated_at=now,
                status=INITIAL_STATUS,
                status_history=[StatusHistoryEntry(status=INITIAL_STATUS, timestamp=now)],
            )
            next_item_id = self._next_item_id
            for new_item in seed:
                self._merge_item(order, new_item)
            order.recompute()
            try:
                _check_limits(order)
            except ValidationError:
                self._next_item_id = next_item_id
                raise

            # Counters only advance once nothing else can fail
            self._next_order_id += 1
            self._orders[order.id] = order
            snapshot = order.snapshot()
            events.append((ORDER_CREATED, snapshot))

        jlog("order_created", order_id=snapshot.id, owner=owner, items=len(snapshot.items))
        return snapshot

    def add_item(self, order_id: int, item: NewLineItem) -> Order:
        """
        Add a line item. A product already on the order is merged by summing
        quantities; otherwise a new line with a fresh item id is appended.

        Raises:
            NotFoundError: unknown order
            ValidationError: quantity < 1, unit price <= 0, missing fields,
                amounts over limit
        """
        new_item = _validate_new_item(item)
        with self._mutation() as events:
            draft = self._draft(order_id)
            next_item_id = self._next_item_id
            self._merge_item(draft, new_item)
            try:
                snapshot = self._commit(draft)
            except ValidationError:
                self._next_item_id = next_item_id
                raise
            events.append((ORDER_UPDATED, snapshot))

        jlog("order_item_added", order_id=order_id, product_ref=new_item.product_ref,
             quantity=new_item.quantity, total=str(snapshot.total))
        return snapshot

    def update_item_quantity(self, order_id: int, item_id: int, quantity: int) -> Order:
        """
        Set a line item's quantity. Zero removes the line.

        Raises:
            NotFoundError: unknown order or item
            ValidationError: negative, non-integer or over-limit quantity
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError(
                "quantity must be 0 or greater",
                {"order_id": order_id, "item_id": item_id, "quantity": quantity},
            )
        if quantity > MAX_QUANTITY:
            raise ValidationError(
                f"quantity must not exceed {MAX_QUANTITY}",
                {"order_id": order_id, "item_id": item_id, "quantity": quantity},
            )

        with self._mutation() as events:
            draft = self._draft(order_id)
            line = draft.find_item(item_id)
            if line is None:
                raise ItemNotFoundError(order_id, item_id)
            if quantity == 0:
                draft.items.remove(line)
            else:
                line.quantity = quantity
            snapshot = self._commit(draft)
            events.append((ORDER_UPDATED, snapshot))

        jlog("order_item_updated", order_id=order_id, item_id=item_id, quantity=quantity)
        return snapshot

    def remove_item(self, order_id: int, item_id: int) -> Order:
        """
        Raises:
            NotFoundError: unknown order or item
        """
        with self._mutation() as events:
            draft = self._draft(order_id)
            line = draft.find_item(item_id)
            if line is None:
                raise ItemNotFoundError(order_id, item_id)
            draft.items.remove(line)
            snapshot = self._commit(draft)
            events.append((ORDER_UPDATED, snapshot))

        jlog("order_item_removed", order_id=order_id, item_id=item_id)
        return snapshot

    def clear(self, order_id: int) -> bool:
        """Empty the order's items. Returns False if the order is absent."""
        with self._mutation() as events:
            if order_id not in self._orders:
                return False
            draft = self._draft(order_id)
            draft.items = []
            snapshot = self._commit(draft)
            events.append((ORDER_UPDATED, snapshot))

        jlog("order_cleared", order_id=order_id)
        return True

    def delete(self, order_id: int) -> bool:
        """Permanently remove the order. Its id is never handed out again."""
        with self._lock:
            removed = self._orders.pop(order_id, None)
        if removed is None:
            return False
        jlog("order_deleted", order_id=order_id, owner=removed.owner)
        return True

    def transition_status(self, order_id: int, new_status: StatusLike) -> Order:
        """
        Apply a status change through the transition engine.

        A same-status request returns the order unchanged and notifies nobody.

        Raises:
            NotFoundError: unknown order
            ValidationError: unknown status, or rejected by strict policy
        """
        with self._mutation() as events:
            draft = self._draft(order_id)
            previous = draft.status
            self.engine.transition(draft, new_status)
            if draft.status == previous:
                return self._orders[order_id].snapshot()
            snapshot = self._commit(draft, recompute=False)
            events.append((STATUS_UPDATED, snapshot))

        jlog("order_status_changed", order_id=order_id,
             from_status=previous.value, to_status=snapshot.status.value)
        return snapshot

    # ------------------------------------------------------------------
    # Internals (lock must be held)
    # ------------------------------------------------------------------

    def _find_by_owner(self, owner: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.owner == owner:
                return order
        return None

    def _draft(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order.snapshot()

    def _commit(self, draft: Order, recompute: bool = True) -> Order:
        if recompute:
            draft.recompute()
            _check_limits(draft)
            draft.touch(self._clock())
        self._orders[draft.id] = draft
        return draft.snapshot()

    def _merge_item(self, order: Order, new_item: NewLineItem) -> None:
        existing = order.find_product(new_item.product_ref)
        if existing is not None:
            existing.quantity += new_item.quantity
            return
        order.items.append(
            LineItem(
                id=self._next_item_id,
                product_ref=new_item.product_ref,
                name=new_item.name,
                quantity=new_item.quantity,
                unit_price=new_item.unit_price,
            )
        )
        self._next_item_id += 1
