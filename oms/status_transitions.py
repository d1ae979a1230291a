"""
Order status transitions.

The engine validates a requested status, applies it to an order record and
keeps the status history append-once: a status gets a history entry the first
time it is reached and re-entering it later adds nothing.

Two policies:
- permissive (default): any recognized status is reachable from any other
- strict_forward: only later lifecycle states are reachable, plus CANCELLED
  from any non-terminal state; terminal states accept nothing

The engine holds no locks. OrderStore calls it on a private copy of the
order while holding the store lock.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, FrozenSet, Optional, Union

from core.exceptions import InvalidTransitionError, ValidationError
from oms.order_state import (
    LIFECYCLE,
    TERMINAL_STATES,
    Order,
    OrderStatus,
    StatusHistoryEntry,
    utcnow,
)

logger = logging.getLogger(__name__)

StatusLike = Union[OrderStatus, str]


def parse_status(value: StatusLike) -> OrderStatus:
    """
    Normalize a status value.

    Raises:
        ValidationError: if the value is not one of the OrderStatus values
    """
    if isinstance(value, OrderStatus):
        return value
    if isinstance(value, str):
        try:
            return OrderStatus(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(s.value for s in OrderStatus)
    raise ValidationError(
        f"status must be one of: {allowed}",
        {"status": value},
    )


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATES


class StatusTransitionEngine:
    """Validates and applies order status changes."""

    def __init__(
        self,
        strict_forward: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.strict_forward = strict_forward
        self._clock = clock or utcnow

    def allowed_targets(self, status: OrderStatus) -> FrozenSet[OrderStatus]:
        """Statuses reachable from ``status`` under the active policy."""
        if not self.strict_forward:
            return frozenset(s for s in OrderStatus if s != status)
        if is_terminal(status):
            return frozenset()
        later = LIFECYCLE[LIFECYCLE.index(status) + 1:]
        return frozenset(later) | {OrderStatus.CANCELLED}

    def transition(self, order: Order, new_status: StatusLike) -> Order:
        """
        Move ``order`` to ``new_status`` in place and return it.

        Same-status requests are a no-op: no history entry, no timestamp bump.

        Raises:
            ValidationError: unknown status value
            InvalidTransitionError: strict mode rejected the move
        """
        target = parse_status(new_status)
        if target == order.status:
            return order

        if self.strict_forward and target not in self.allowed_targets(order.status):
            raise InvalidTransitionError(
                f"Cannot move order from {order.status.value} to {target.value}",
                {"order_id": order.id, "from": order.status.value, "to": target.value},
            )

        now = order.touch(self._clock())
        previous = order.status
        order.status = target
        if order.history_for(target) is None:
            order.status_history.append(StatusHistoryEntry(status=target, timestamp=now))

        logger.debug(f"Order {order.id} status {previous.value} -> {target.value}")
        return order
