from __future__ import annotations

import re
from datetime import datetime
from typing import Any

MAX_EVENTS = 300
# a full report of MAX_EVENTS events stays well under this
MAX_BODY_BYTES = 256 * 1024
ALLOWED_ENDPOINTS = {"/quotes", "/fx", "/search"}
ALLOWED_ERROR_TYPES = {"httpError", "decoding", "network", "timeout", "badURL", "unknown"}

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_PHONE_RE = re.compile(r"(\+?\d[\d\s\-()]{7,}\d)")

# report field -> max length
_BOUNDED_FIELDS = (
    ("backendEnvironment", 32),
    ("appVersion", 32),
    ("iosVersion", 32),
    ("deviceModel", 64),
)


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.fullmatch(value))


def is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def is_bounded_string(value: Any, max_len: int) -> bool:
    return isinstance(value, str) and 0 < len(value) <= max_len


def contains_pii(value: Any) -> bool:
    """Flag strings that look like an email address or a phone number."""
    if not isinstance(value, str):
        return False
    return "@" in value or bool(_PHONE_RE.search(value))


def _is_http_status(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return isinstance(value, int) and 100 <= value <= 599


def _validate_event(event: Any) -> str | None:
    if not isinstance(event, dict):
        return "invalid_event"
    if not is_iso_timestamp(event.get("timestamp")):
        return "invalid_event_timestamp"

    endpoint = event.get("endpoint")
    if endpoint not in ALLOWED_ENDPOINTS:
        return "invalid_event_endpoint"
    if not _is_http_status(event.get("httpStatus")):
        return "invalid_event_httpStatus"

    error_type = event.get("errorType")
    if error_type not in ALLOWED_ERROR_TYPES:
        return "invalid_event_errorType"
    if not is_uuid(event.get("requestId")):
        return "invalid_event_requestId"

    # requestId and timestamps are not scanned, they legitimately hold digit runs
    if contains_pii(endpoint) or contains_pii(error_type):
        return "pii_detected"
    return None


def validate_report(body: Any) -> str | None:
    """Return the first failing error code for a telemetry report, or None."""
    if not isinstance(body, dict):
        return "invalid_json"
    if not is_uuid(body.get("reportId")):
        return "invalid_reportId"
    if not is_iso_timestamp(body.get("createdAt")):
        return "invalid_createdAt"

    for field, max_len in _BOUNDED_FIELDS:
        value = body.get(field)
        if not is_bounded_string(value, max_len) or contains_pii(value):
            return f"invalid_{field}"

    events = body.get("events")
    if not isinstance(events, list):
        return "invalid_events"
    if len(events) > MAX_EVENTS:
        return "too_many_events"

    for event in events:
        error = _validate_event(event)
        if error:
            return error
    return None


def status_for_error(error: str) -> int:
    return 413 if error in ("too_many_events", "payload_too_large") else 400
