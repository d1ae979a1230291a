"""
Tests for the unified exception hierarchy.

This module tests core/exceptions.py which provides the error taxonomy the
HTTP adapter and broadcast path rely on.
"""

import pytest
from datetime import datetime

from core.exceptions import (
    OrderServiceError,
    NotFoundError,
    OrderNotFoundError,
    ItemNotFoundError,
    ValidationError,
    InvalidTransitionError,
    ConflictError,
    DuplicateOwnerOrderError,
    DeliveryError,
    SubscriberClosedError,
    SubscriberOverflowError,
    ConfigurationError,
    SettingsValidationError,
    get_error_code,
    http_status_for,
)


class TestOrderServiceError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        error = OrderServiceError("Something failed")
        assert error.message == "Something failed"
        assert error.error_code == "SERVICE_ERROR"
        assert error.context == {}
        assert error.cause is None
        assert isinstance(error.timestamp, datetime)

    def test_str_includes_context(self):
        error = OrderServiceError("Bad thing", context={"order_id": 3})
        assert str(error) == "[SERVICE_ERROR] Bad thing (order_id=3)"

    def test_to_dict(self):
        cause = ValueError("root cause")
        error = OrderServiceError("Wrapped", context={"k": "v"}, cause=cause)
        d = error.to_dict()
        assert d["error_code"] == "SERVICE_ERROR"
        assert d["message"] == "Wrapped"
        assert d["context"] == {"k": "v"}
        assert d["cause"] == "root cause"
        assert "timestamp" in d


class TestNotFound:
    def test_order_not_found(self):
        error = OrderNotFoundError(42)
        assert isinstance(error, NotFoundError)
        assert error.http_status == 404
        assert error.error_code == "ORDER_NOT_FOUND"
        assert error.message == "Order with ID 42 does not exist"
        assert error.context == {"order_id": 42}
        assert error.order_id == 42

    def test_item_not_found(self):
        error = ItemNotFoundError(1, 9)
        assert isinstance(error, NotFoundError)
        assert error.context == {"order_id": 1, "item_id": 9}
        assert error.item_id == 9


class TestValidation:
    def test_invalid_transition_is_validation(self):
        error = InvalidTransitionError("shipped -> pending", {"from": "shipped"})
        assert isinstance(error, ValidationError)
        assert error.http_status == 400
        assert error.error_code == "INVALID_STATE_TRANSITION"


class TestConflict:
    def test_duplicate_owner(self):
        error = DuplicateOwnerOrderError("alice", 5)
        assert isinstance(error, ConflictError)
        assert error.http_status == 409
        assert error.existing_order_id == 5
        assert error.context == {"owner": "alice", "existing_order_id": 5}


class TestDelivery:
    @pytest.mark.parametrize("cls", [SubscriberClosedError, SubscriberOverflowError])
    def test_delivery_errors(self, cls):
        error = cls("gone")
        assert isinstance(error, DeliveryError)
        assert isinstance(error, OrderServiceError)
        assert error.http_status == 500


class TestConfiguration:
    def test_settings_validation_error(self):
        error = SettingsValidationError("bad config", {"path": "x.yaml"})
        assert isinstance(error, ConfigurationError)
        assert error.error_code == "SETTINGS_INVALID"


class TestHelpers:
    def test_get_error_code(self):
        assert get_error_code(OrderNotFoundError(1)) == "ORDER_NOT_FOUND"
        assert get_error_code(RuntimeError("x")) == "UNKNOWN"

    def test_http_status_for(self):
        assert http_status_for(ItemNotFoundError(1, 2)) == 404
        assert http_status_for(ValidationError("x")) == 400
        assert http_status_for(DuplicateOwnerOrderError("a", 1)) == 409
        assert http_status_for(KeyError("x")) == 500

    def test_catch_by_base(self):
        with pytest.raises(OrderServiceError):
            raise OrderNotFoundError(7)
