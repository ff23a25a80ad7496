"""Utility functions for spancost."""

from spancost.utils.attributes import (
    ABSENT,
    Absent,
    MetadataValue,
    Parsed,
    Raw,
    decode_json_value,
    get_attr,
    get_str_attr,
    parse_maybe_json,
    pick_mapping,
    pick_number,
    to_finite_number,
    to_token_count,
)
from spancost.utils.helpers import (
    format_span_id,
    format_trace_id,
    ns_to_iso,
    span_ids,
)

__all__ = [
    "ABSENT",
    "Absent",
    "MetadataValue",
    "Parsed",
    "Raw",
    "decode_json_value",
    "get_attr",
    "get_str_attr",
    "parse_maybe_json",
    "pick_mapping",
    "pick_number",
    "to_finite_number",
    "to_token_count",
    "format_trace_id",
    "format_span_id",
    "ns_to_iso",
    "span_ids",
]
