"""Tests for attribute lookup and JSON-or-object decoding."""

import json
import math

from spancost.utils import (
    ABSENT,
    Parsed,
    Raw,
    decode_json_value,
    get_attr,
    get_str_attr,
    ns_to_iso,
    span_ids,
    to_finite_number,
    to_token_count,
)


class TestDecodeJsonValue:
    def test_none_is_absent(self):
        assert decode_json_value(None) is ABSENT

    def test_mapping_is_parsed_as_is(self):
        value = {"openai": {"usage": {}}}
        decoded = decode_json_value(value)
        assert isinstance(decoded, Parsed)
        assert decoded.value is value

    def test_json_object_string_is_parsed(self):
        decoded = decode_json_value('{"a": {"b": 1}}')
        assert decoded == Parsed({"a": {"b": 1}})

    def test_malformed_json_is_raw(self):
        assert decode_json_value('{"invalid": }') == Raw('{"invalid": }')

    def test_json_array_is_raw(self):
        assert isinstance(decode_json_value("[1, 2]"), Raw)

    def test_other_types_are_absent(self):
        assert decode_json_value(42) is ABSENT


class TestGetAttr:
    def test_direct_key_wins(self):
        attrs = {"ai.usage.promptTokens": 7, "ai.usage": json.dumps({"promptTokens": 9})}
        assert get_attr(attrs, ["ai.usage.promptTokens"]) == 7

    def test_first_candidate_in_order(self):
        attrs = {"b": 2, "a": 1}
        assert get_attr(attrs, ["missing", "a", "b"]) == 1

    def test_nested_path_through_json_string(self):
        attrs = {"ai.telemetry.metadata": json.dumps({"userId": "u-1"})}
        assert get_attr(attrs, ["ai.telemetry.metadata.userId"]) == "u-1"

    def test_nested_path_through_mapping(self):
        attrs = {"ai": {"response": {"model": "gpt-4o"}}}
        assert get_attr(attrs, ["ai.response.model"]) == "gpt-4o"

    def test_longest_existing_root_is_used(self):
        attrs = {"experimental_telemetry.metadata": {"workspaceId": "ws-9"}}
        assert get_attr(attrs, ["experimental_telemetry.metadata.workspaceId"]) == "ws-9"

    def test_malformed_json_is_not_found(self):
        attrs = {"ai.telemetry.metadata": "{not json"}
        assert get_attr(attrs, ["ai.telemetry.metadata.userId"]) is None

    def test_none_values_are_skipped(self):
        attrs = {"a": None, "b": 0}
        assert get_attr(attrs, ["a", "b"]) == 0

    def test_empty_attrs(self):
        assert get_attr(None, ["a"]) is None
        assert get_attr({}, ["a"]) is None

    def test_get_str_attr_skips_blank_and_non_strings(self):
        attrs = {"a": "  ", "b": 5, "c": "value"}
        assert get_str_attr(attrs, ["a", "b", "c"]) == "value"


class TestNumbers:
    def test_to_finite_number(self):
        assert to_finite_number(3) == 3
        assert to_finite_number("2.5") == 2.5
        assert to_finite_number(True) is None
        assert to_finite_number(float("nan")) is None
        assert to_finite_number(math.inf) is None
        assert to_finite_number("abc") is None

    def test_to_token_count(self):
        assert to_token_count(12.9) == 12
        assert to_token_count(-5) == 0
        assert to_token_count(None) == 0
        assert to_token_count("x", default=3) == 3


class TestSpanHelpers:
    def test_ns_to_iso_millisecond_precision(self):
        assert ns_to_iso(1714564800_123_456_789) == "2024-05-01T12:00:00.123Z"

    def test_ns_to_iso_rounds_to_nearest_millisecond(self):
        assert ns_to_iso(1714564800_999_600_000) == "2024-05-01T12:00:01.000Z"

    def test_ns_to_iso_defaults_to_now(self):
        assert ns_to_iso(None).endswith("Z")

    def test_span_ids(self, make_span):
        trace_id, span_id = span_ids(make_span())
        assert trace_id == "0af7651916cd43dd8448eb211c80319c"
        assert span_id == "00f067aa0ba902b7"

    def test_span_ids_without_context(self, make_span):
        assert span_ids(make_span(context=False)) == (None, None)
