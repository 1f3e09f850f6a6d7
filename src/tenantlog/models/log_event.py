"""
Event data models.

- LogEvent: canonical unit exchanged between ingest and worker
- ProcessedRecord: storage-side projection written by the worker
- AcceptedResponse / ErrorResponse: ingest API payloads
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class LogSource(str, Enum):
    """Ingestion path that produced an event."""

    JSON_UPLOAD = "json_upload"
    TEXT_UPLOAD = "text_upload"


class RecordStatus(str, Enum):
    """Terminal status of a stored record."""

    PROCESSED = "PROCESSED"


class LogEvent(BaseModel):
    """
    Normalized log submission.

    Immutable once built; the worker only derives new fields from it.
    """

    tenant_id: str = Field(min_length=1, description="Isolation boundary, caller supplied")
    log_id: str = Field(min_length=1, description="Unique within a tenant")
    original_text: str = Field(min_length=1, description="Raw submitted content, verbatim")
    source: LogSource = Field(description="Ingestion path")

    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_message_body(self) -> str:
        """Serialize to the queue wire format."""
        return self.model_dump_json()


class ProcessedRecord(BaseModel):
    """
    Stored projection of a processed event.

    Keyed by ``(tenant_id, log_id)``.
    """

    tenant_id: str = Field(min_length=1)
    log_id: str = Field(min_length=1)
    original_text: str
    source: LogSource
    modified_data: str = Field(description="Redacted text")
    processed_at: datetime = Field(description="UTC time of the write")
    status: RecordStatus = Field(default=RecordStatus.PROCESSED)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_event(cls, event: LogEvent, modified_data: str, processed_at: datetime) -> "ProcessedRecord":
        return cls(
            tenant_id=event.tenant_id,
            log_id=event.log_id,
            original_text=event.original_text,
            source=event.source,
            modified_data=modified_data,
            processed_at=processed_at,
            status=RecordStatus.PROCESSED,
        )

    @property
    def key(self) -> tuple:
        return (self.tenant_id, self.log_id)

    @field_serializer("processed_at")
    def serialize_processed_at(self, value: datetime) -> str:
        """RFC 3339 in UTC, second precision."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_item(self) -> Dict[str, Any]:
        """Flat item as written to the store."""
        return self.model_dump(mode="json")


class AcceptedResponse(BaseModel):
    """
    Response from the ingest endpoint.

    202 Accepted: the event is durably queued, not processed.
    """

    status: str = Field(default="accepted")
    log_id: str
    tenant_id: str
    message: str = Field(default="Processing queued")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(description="Reason for the failure")
