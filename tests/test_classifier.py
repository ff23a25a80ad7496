"""Tests for billable span classification."""

import pytest

from spancost.processors import BILLABLE_OPERATIONS, classify_span, has_call_attributes, is_billable_name


class TestBillableName:
    @pytest.mark.parametrize("name", BILLABLE_OPERATIONS)
    def test_billable_operations(self, name):
        assert is_billable_name(name)

    def test_operation_embedded_in_longer_name(self):
        assert is_billable_name("ai.streamText.doStream gpt-4o")

    @pytest.mark.parametrize("name", ["ai.generateText", "ai.streamText", "ai.embed.doEmbed", "", None])
    def test_wrapper_and_other_spans(self, name):
        assert not is_billable_name(name)


class TestClassifySpan:
    def test_valid_call_span(self, make_span, make_attrs):
        view = classify_span(make_span(attributes=make_attrs(provider="anthropic", model="claude-3-haiku")))
        assert view is not None
        assert view.name == "ai.generateText.doGenerate"
        assert view.provider == "anthropic.chat"
        assert view.attributes["gen_ai.request.model"] == "claude-3-haiku"

    def test_provider_falls_back_to_model_provider(self, make_span, make_attrs):
        attrs = make_attrs(provider="openai", **{"gen_ai.system": " ", "ai.model.provider": "openai.responses"})
        assert classify_span(make_span(attributes=attrs)).provider == "openai.responses"

    def test_non_billable_name_is_skipped(self, make_span):
        assert classify_span(make_span(name="ai.generateText")) is None

    @pytest.mark.parametrize(
        "key", ["operation.name", "ai.operationId", "gen_ai.system", "gen_ai.request.model", "gen_ai.usage.input_tokens"]
    )
    def test_missing_required_attribute_is_skipped(self, make_span, make_attrs, key):
        attrs = make_attrs()
        del attrs[key]
        assert classify_span(make_span(attributes=attrs)) is None

    def test_empty_operation_id_is_skipped(self, make_attrs):
        assert not has_call_attributes(make_attrs(**{"ai.operationId": ""}))

    def test_non_numeric_token_counts_are_skipped(self, make_attrs):
        assert not has_call_attributes(make_attrs(**{"gen_ai.usage.output_tokens": "10"}))
        assert not has_call_attributes(make_attrs(**{"gen_ai.usage.output_tokens": True}))
        assert not has_call_attributes(make_attrs(**{"gen_ai.usage.output_tokens": float("nan")}))

    def test_non_mapping_attributes(self):
        assert not has_call_attributes(None)
