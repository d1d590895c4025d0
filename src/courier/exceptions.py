"""Courier exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from CourierError for easy catching.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base exception for all Courier errors.

    All custom exceptions in Courier inherit from this class,
    allowing callers to catch all Courier-related errors with
    a single except clause.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "courier_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(CourierError):
    """Invalid input provided.

    Raised when user input fails validation checks.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class ConfigError(ValidationError):
    """Invalid subscription or integration configuration.

    Rejected at registration time and never retried.
    """

    code: str = "config_error"


class NotFoundError(CourierError):
    """Resource not found.

    Raised when a requested resource (subscription, delivery, integration,
    template) doesn't exist.

    Attributes:
        resource_type: Type of resource (e.g., "subscription", "delivery").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class DeliveryError(CourierError):
    """An outbound HTTP call failed.

    Covers network errors, timeouts and non-2xx responses. For event
    deliveries this is recorded on the Delivery and retried per policy;
    for integration executions it is raised to the caller.

    Attributes:
        status_code: HTTP status code if a response was received.
    """

    code: str = "delivery_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "status_code": self.status_code,
                "message": self.message,
            }
        }


class FilterEvaluationError(CourierError):
    """A filter condition could not be evaluated.

    Raised for unresolvable field paths or malformed regex patterns.
    matches_filter always degrades this to a non-match.
    """

    code: str = "filter_evaluation_error"


class PersistenceError(CourierError):
    """Storage read or write failed.

    In-memory state is left untouched when this is raised.
    """

    code: str = "persistence_error"


class DeliveryStateError(CourierError):
    """Operation not allowed in the delivery's current state.

    Raised when a manual retry targets a delivery that already succeeded.

    Attributes:
        delivery_id: ID of the delivery.
        status: Current delivery status.
    """

    code: str = "invalid_delivery_state"

    def __init__(self, delivery_id: str, status: str) -> None:
        self.delivery_id = delivery_id
        self.status = status
        super().__init__(f"Delivery {delivery_id} cannot be retried in status '{status}'")


class QueueFullError(CourierError):
    """The event queue is at capacity and the overflow policy is 'reject'.

    Attributes:
        capacity: Configured queue capacity.
    """

    code: str = "queue_full"

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(f"Event queue is full (capacity {capacity})")
