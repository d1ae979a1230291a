"""
Unified Exception Hierarchy for the Order Tracking Service.

All exceptions inherit from OrderServiceError, enabling consistent error
handling at the HTTP boundary and in the broadcast path.

Usage:
    from core.exceptions import NotFoundError, ValidationError, ConflictError

    try:
        store.add_item(order_id, item)
    except NotFoundError as e:
        return 404, e.to_dict()
    except ValidationError as e:
        return 400, e.to_dict()

Taxonomy:
    NotFoundError     unknown order or item id (surfaced, no retry)
    ValidationError   malformed quantity/price/status (surfaced, no state change)
    ConflictError     policy violation such as a duplicate owner order
    DeliveryError     broadcast-path failures, never surfaced to mutation callers
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class OrderServiceError(Exception):
    """
    Base exception for all order service errors.

    Attributes:
        error_code: Unique identifier for this error type
        http_status: Status code the HTTP adapter maps this error to
        context: Additional context about the error
        timestamp: When the error occurred
    """
    error_code: str = "SERVICE_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def __str__(self) -> str:
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(OrderServiceError):
    """Raised when an order or line item id is unknown."""
    error_code = "NOT_FOUND"
    http_status = 404


class OrderNotFoundError(NotFoundError):
    error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int, context: Optional[Dict[str, Any]] = None):
        ctx = {"order_id": order_id, **(context or {})}
        super().__init__(f"Order with ID {order_id} does not exist", ctx)
        self.order_id = order_id


class ItemNotFoundError(NotFoundError):
    error_code = "ITEM_NOT_FOUND"

    def __init__(self, order_id: int, item_id: int):
        super().__init__(
            f"Item with ID {item_id} not found in order {order_id}",
            {"order_id": order_id, "item_id": item_id},
        )
        self.order_id = order_id
        self.item_id = item_id


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationError(OrderServiceError):
    """
    Raised when an argument fails the rules needed to keep the order
    state machine sound (quantity, unit price, status value).

    No state change has happened when this is raised.
    """
    error_code = "VALIDATION_FAILED"
    http_status = 400


class InvalidTransitionError(ValidationError):
    """
    Raised when strict forward-only transitions are enabled and the
    requested status move goes backwards or leaves a terminal state.

    pending -> processing -> shipped -> delivered (valid)
    shipped -> pending (invalid - raises this error)
    """
    error_code = "INVALID_STATE_TRANSITION"


# =============================================================================
# CONFLICT
# =============================================================================

class ConflictError(OrderServiceError):
    """Raised when a store policy would be violated."""
    error_code = "CONFLICT"
    http_status = 409


class DuplicateOwnerOrderError(ConflictError):
    """
    Raised by create() when the one-order-per-owner policy is enabled and
    the owner already has a live order.
    """
    error_code = "OWNER_HAS_ACTIVE_ORDER"

    def __init__(self, owner: str, existing_order_id: int):
        super().__init__(
            f"Owner {owner} already has an active order",
            {"owner": owner, "existing_order_id": existing_order_id},
        )
        self.owner = owner
        self.existing_order_id = existing_order_id


# =============================================================================
# DELIVERY (broadcast path only)
# =============================================================================

class DeliveryError(OrderServiceError):
    """
    Base class for subscriber delivery failures.

    Raised by subscriber handles and swallowed by the dispatcher, which
    prunes the failing handle. Never reaches a mutation caller.
    """
    error_code = "DELIVERY_FAILED"


class SubscriberClosedError(DeliveryError):
    """Raised when sending to a handle whose connection is already closed."""
    error_code = "SUBSCRIBER_CLOSED"


class SubscriberOverflowError(DeliveryError):
    """Raised when a subscriber's pending-message queue is full."""
    error_code = "SUBSCRIBER_OVERFLOW"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(OrderServiceError):
    error_code = "CONFIG_ERROR"


class SettingsValidationError(ConfigurationError):
    """
    Raised when settings fail schema validation.

    Uses Pydantic validation under the hood.
    """
    error_code = "SETTINGS_INVALID"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Returns:
        Error code string, or "UNKNOWN" for foreign exceptions
    """
    if isinstance(error, OrderServiceError):
        return error.error_code
    return "UNKNOWN"


def http_status_for(error: Exception) -> int:
    """Map an exception to the HTTP status code the adapter should return."""
    if isinstance(error, OrderServiceError):
        return error.http_status
    return 500
