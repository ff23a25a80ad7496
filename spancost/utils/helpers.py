"""Helper functions for reading OpenTelemetry span identity and timing."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def format_trace_id(trace_id: int) -> str:
    """
    Format OTel trace_id (int) to hex string.

    Args:
        trace_id: OTel trace_id as int

    Returns:
        32-character hex string
    """
    return format(trace_id, '032x')


def format_span_id(span_id: int) -> str:
    """
    Format OTel span_id (int) to hex string.

    Args:
        span_id: OTel span_id as int

    Returns:
        16-character hex string
    """
    return format(span_id, '016x')


def span_ids(span: Any) -> tuple[Optional[str], Optional[str]]:
    """Return (trace_id, span_id) as hex strings, or Nones if the span has no context."""
    context = getattr(span, "context", None)
    if context is None:
        get_context = getattr(span, "get_span_context", None)
        context = get_context() if callable(get_context) else None
    if context is None:
        return None, None
    return format_trace_id(context.trace_id), format_span_id(context.span_id)


def ns_to_iso(timestamp_ns: Optional[int]) -> str:
    """
    Convert an epoch timestamp in nanoseconds to an ISO-8601 UTC string.

    Precision is milliseconds with a trailing "Z", e.g. "2024-05-01T12:00:00.123Z".
    Spans without an end time are stamped with the current time.
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()
    millis = round(timestamp_ns / 1_000_000)
    seconds, remainder = divmod(millis, 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=remainder)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
