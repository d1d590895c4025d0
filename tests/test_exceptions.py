"""Tests for Courier exception hierarchy."""

import pytest

from courier.exceptions import (
    ConfigError,
    CourierError,
    DeliveryError,
    DeliveryStateError,
    FilterEvaluationError,
    NotFoundError,
    PersistenceError,
    QueueFullError,
    ValidationError,
)


class TestCourierError:
    """Tests for the base CourierError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = CourierError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert CourierError("boom").to_dict() == {
            "error": {"code": "courier_error", "message": "boom"}
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from CourierError."""
        exceptions = [
            ValidationError("field", "invalid"),
            ConfigError("url", "invalid"),
            NotFoundError("subscription", "sub_1"),
            DeliveryError("HTTP 500"),
            FilterEvaluationError("no such field"),
            PersistenceError("disk full"),
            DeliveryStateError("dlv_1", "success"),
            QueueFullError(10),
        ]
        for exc in exceptions:
            assert isinstance(exc, CourierError)

    def test_can_catch_all(self):
        """Should be able to catch all errors with CourierError."""
        with pytest.raises(CourierError):
            raise PersistenceError("disk full")


class TestValidationError:
    """Tests for ValidationError and ConfigError."""

    def test_field_in_message_and_dict(self):
        error = ValidationError("limit", "must be between 1 and 500")
        assert error.field == "limit"
        assert error.message == "limit: must be between 1 and 500"
        assert error.to_dict()["error"]["field"] == "limit"

    def test_config_error_is_validation_error(self):
        """ConfigError is caught wherever ValidationError is."""
        error = ConfigError("config.webhookUrl", "Field required")
        assert isinstance(error, ValidationError)
        assert error.code == "config_error"


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_details(self):
        error = NotFoundError("delivery", "dlv_9")
        assert error.message == "delivery not found: dlv_9"
        assert error.to_dict()["error"]["resource_type"] == "delivery"
        assert error.to_dict()["error"]["resource_id"] == "dlv_9"


class TestDeliveryErrors:
    """Tests for delivery-related errors."""

    def test_delivery_error_status_code(self):
        error = DeliveryError("HTTP 502: Bad Gateway", status_code=502)
        assert error.to_dict()["error"]["status_code"] == 502

    def test_delivery_error_without_response(self):
        assert DeliveryError("Request timed out after 30s").status_code is None

    def test_delivery_state_error(self):
        error = DeliveryStateError("dlv_1", "success")
        assert error.code == "invalid_delivery_state"
        assert "success" in error.message

    def test_queue_full(self):
        error = QueueFullError(10_000)
        assert error.capacity == 10_000
        assert error.code == "queue_full"
