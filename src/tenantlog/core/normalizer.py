"""
Ingest normalizer.

Turns a raw HTTP body plus headers into a LogEvent, or raises one of the
ValidationError subclasses. Validation order (first failure wins):

1. unsupported content type
2. malformed JSON body (JSON path only)
3. missing tenant_id
4. missing text

Nothing here touches the queue or the store.
"""

import json
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import structlog

from ..models.log_event import LogEvent, LogSource
from .exceptions import (
    InvalidJSONError,
    MissingTenantError,
    MissingTextError,
    UnsupportedContentTypeError,
)

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"
TENANT_HEADER = "x-tenant-id"


def new_log_id() -> str:
    """
    Generate a time-ordered unique identifier.

    UUID version 7 layout: 48-bit Unix epoch milliseconds followed by
    random bits, so identifiers sort by creation time.
    """
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76                           # version
    value |= ((rand >> 62) & 0xFFF) << 64        # rand_a
    value |= 0b10 << 62                          # variant
    value |= rand & ((1 << 62) - 1)              # rand_b
    return str(uuid.UUID(int=value))


@dataclass(frozen=True)
class JsonSubmission:
    """
    Decoded JSON upload.

    Every field is ``None`` when the key is absent or not a string.
    """

    tenant_id: Optional[str] = None
    text: Optional[str] = None
    log_id: Optional[str] = None


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def decode_json_submission(body: Union[bytes, str]) -> JsonSubmission:
    """
    Decode a JSON upload body.

    Raises:
        InvalidJSONError: body is not valid JSON (NaN and Infinity included)
            or is neither an object nor null
    """
    try:
        payload = json.loads(body, parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidJSONError(str(e)) from e

    # A bare null decodes to an empty submission
    if payload is None:
        return JsonSubmission()

    if not isinstance(payload, dict):
        raise InvalidJSONError(f"expected object, got {type(payload).__name__}")

    submission = JsonSubmission(
        tenant_id=_optional_str(payload, "tenant_id"),
        text=_optional_str(payload, "text"),
        log_id=_optional_str(payload, "log_id"),
    )

    ignored = [
        key for key in ("tenant_id", "text", "log_id")
        if key in payload and getattr(submission, key) is None
    ]
    if ignored:
        logger.debug("Ignoring non-string JSON fields", fields=ignored)

    return submission


def fold_headers(headers: Mapping[str, str]) -> dict:
    """Lower-case header names; later duplicates win."""
    return {key.lower(): value for key, value in headers.items()}


def _decode_text(body: Union[bytes, str]) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body


def normalize_request(
    body: Union[bytes, str],
    headers: Mapping[str, str],
    id_factory: Callable[[], str] = new_log_id,
) -> LogEvent:
    """
    Normalize a raw ingest request into a LogEvent.

    Args:
        body: Raw request body
        headers: Request headers, any case
        id_factory: Generator for log ids the caller did not supply

    Returns:
        Validated LogEvent

    Raises:
        UnsupportedContentTypeError, InvalidJSONError,
        MissingTenantError, MissingTextError
    """
    folded = fold_headers(headers)
    content_type = folded.get("content-type", "").lower()

    tenant_id: Optional[str]
    text: Optional[str]
    log_id: Optional[str] = None

    if JSON_CONTENT_TYPE in content_type:
        source = LogSource.JSON_UPLOAD
        submission = decode_json_submission(body)
        tenant_id = submission.tenant_id
        text = submission.text
        log_id = submission.log_id
    elif TEXT_CONTENT_TYPE in content_type:
        source = LogSource.TEXT_UPLOAD
        tenant_id = folded.get(TENANT_HEADER)
        text = _decode_text(body)
    else:
        raise UnsupportedContentTypeError(content_type)

    if not tenant_id:
        raise MissingTenantError()

    if not text:
        raise MissingTextError()

    return LogEvent(
        tenant_id=tenant_id,
        log_id=log_id or id_factory(),
        original_text=text,
        source=source,
    )
