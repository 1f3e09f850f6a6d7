"""
Pydantic data models package.

Contains the canonical event, the stored record and API payloads.
"""

from .log_event import (
    AcceptedResponse,
    ErrorResponse,
    LogEvent,
    LogSource,
    ProcessedRecord,
    RecordStatus,
)

__all__ = [
    "AcceptedResponse",
    "ErrorResponse",
    "LogEvent",
    "LogSource",
    "ProcessedRecord",
    "RecordStatus",
]
