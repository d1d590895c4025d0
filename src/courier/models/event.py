"""Event models for internally generated domain events.

Events are immutable facts such as ``document.processed``. They are not
stored on their own; each Delivery keeps a snapshot of the event it carries.
"""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import format_timestamp, generate_id


class Event(BaseModel):
    """Event payload delivered to subscribed endpoints.

    Attributes:
        id: Unique identifier for this event.
        type: Dot-namespaced event type (document.processed, user.created, etc.).
        data: Event-specific payload data.
        timestamp: When the event occurred.
        source: Component that produced the event.
        user_id: Acting user (optional).
        session_id: Session context (optional).
        metadata: Extra producer-supplied context (optional).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: str = Field(min_length=1, description="Event type")
    data: Any = Field(default=None, description="Event-specific payload")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: str = Field(default="api", description="Producing component")
    user_id: str | None = Field(default=None)
    session_id: str | None = Field(default=None)
    metadata: dict[str, Any] | None = Field(default=None)

    def to_payload(self) -> dict[str, Any]:
        """Build the wire body sent to subscribers.

        Key order and camelCase names are part of the callback contract.
        Optional keys are omitted when unset.
        """
        payload: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "timestamp": format_timestamp(self.timestamp),
            "source": self.source,
        }
        if self.user_id is not None:
            payload["userId"] = self.user_id
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload

    def to_json(self) -> str:
        """Compact JSON body; these exact bytes are sent and signed."""
        return json.dumps(
            self.to_payload(), separators=(",", ":"), ensure_ascii=False, default=str
        )

    @classmethod
    def document_processed(
        cls,
        document_id: str,
        file_name: str,
        file_size: int,
        processing_time_ms: int,
        operations: list[str],
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> "Event":
        """Create event for a finished document processing run."""
        return cls(
            type="document.processed",
            source="pdf_service",
            user_id=user_id,
            session_id=session_id,
            data={
                "document": {
                    "id": document_id,
                    "fileName": file_name,
                    "fileSize": file_size,
                    "processingTime": processing_time_ms,
                    "operations": operations,
                },
            },
            metadata={
                "operationCount": len(operations),
                "avgProcessingTime": processing_time_ms,
            },
        )

    @classmethod
    def document_shared(
        cls,
        document_id: str,
        file_name: str,
        shared_with: list[str],
        permissions: list[str],
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> "Event":
        """Create event for a document shared with other users."""
        return cls(
            type="document.shared",
            source="collaboration_service",
            user_id=user_id,
            session_id=session_id,
            data={
                "document": {"id": document_id, "fileName": file_name},
                "sharing": {"sharedWith": shared_with, "permissions": permissions},
            },
            metadata={
                "recipientCount": len(shared_with),
                "permissionCount": len(permissions),
            },
        )

    @classmethod
    def error_occurred(
        cls,
        error: str,
        message: str,
        context: dict[str, Any] | None = None,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> "Event":
        """Create event for an error surfaced by another component."""
        return cls(
            type="error.occurred",
            source="error_handler",
            user_id=user_id,
            session_id=session_id,
            data={"error": {"type": error, "message": message, "context": context}},
            metadata={"errorType": error, "hasContext": context is not None},
        )

    @classmethod
    def batch_operation_completed(
        cls,
        batch_id: str,
        operation_type: str,
        total_items: int,
        success_count: int,
        failure_count: int,
        processing_time_ms: int,
        user_id: str | None = None,
    ) -> "Event":
        """Create event for a completed batch job."""
        success_rate = (success_count / total_items) * 100 if total_items else 0.0
        return cls(
            type="batch.operation.completed",
            source="batch_service",
            user_id=user_id,
            data={
                "batch": {
                    "id": batch_id,
                    "operationType": operation_type,
                    "totalItems": total_items,
                    "successCount": success_count,
                    "failureCount": failure_count,
                    "processingTime": processing_time_ms,
                    "successRate": success_rate,
                },
            },
            metadata={
                "operationType": operation_type,
                "successRate": success_rate,
                "hasFailures": failure_count > 0,
            },
        )

    @classmethod
    def quota_exceeded(
        cls,
        quota_type: str,
        limit: int,
        current: int,
        user_id: str,
        tier: str,
    ) -> "Event":
        """Create event for a user going over a usage quota."""
        return cls(
            type="quota.exceeded",
            source="rate_limit_service",
            user_id=user_id,
            data={
                "quota": {
                    "type": quota_type,
                    "limit": limit,
                    "current": current,
                    "percentage": (current / limit) * 100 if limit else 0.0,
                },
                "user": {"id": user_id, "tier": tier},
            },
            metadata={"quotaType": quota_type, "userTier": tier},
        )


__all__ = ["Event"]
