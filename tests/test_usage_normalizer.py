"""Tests for provider-specific token normalization."""

import json

import pytest

from spancost.models import CanonicalUsage
from spancost.processors.usage_normalizer import (
    ProviderFamily,
    extract_sdk_usage,
    normalize_provider_tokens,
)

BASE_USAGE = CanonicalUsage(input=100, output=10)

ANTHROPIC_METADATA = {
    "anthropic": {
        "usage": {
            "input_tokens": 104,
            "output_tokens": 12,
            "cache_creation_input_tokens": 0,
            "cache_read_input_tokens": 2903,
        },
        "cacheCreationInputTokens": 0,
    }
}

OPENAI_METADATA = {
    "openai": {
        "responseId": "resp_test",
        "serviceTier": "default",
        "usage": {"input_tokens": 200, "output_tokens": 20, "cached_input_tokens": 50},
    }
}

GOOGLE_METADATA = {"google": {"usageMetadata": {"promptTokenCount": 200, "cachedContentTokenCount": 120}}}


def with_metadata(make_attrs, provider, metadata, **extra):
    return make_attrs(provider=provider, **{"ai.response.providerMetadata": metadata}, **extra)


class TestProviderFamily:
    @pytest.mark.parametrize(
        "provider, family",
        [
            ("anthropic.messages", ProviderFamily.ANTHROPIC),
            ("OpenAI.Responses", ProviderFamily.OPENAI),
            ("google.generative-ai", ProviderFamily.GOOGLE),
            ("vertex.gemini", ProviderFamily.GOOGLE),
            ("xai.chat", ProviderFamily.XAI),
            ("grok", ProviderFamily.XAI),
            ("mistral.chat", ProviderFamily.MISTRAL),
            ("cohere.chat", ProviderFamily.UNKNOWN),
            (None, ProviderFamily.UNKNOWN),
        ],
    )
    def test_from_provider(self, provider, family):
        assert ProviderFamily.from_provider(provider) is family


class TestExtractSdkUsage:
    def test_reads_gen_ai_usage(self, make_attrs):
        usage = extract_sdk_usage(make_attrs(input_tokens=2221, output_tokens=563))
        assert usage == CanonicalUsage(input=2221, output=563, cache_read=0, cache_write=0)

    def test_falls_back_to_ai_usage_keys(self):
        usage = extract_sdk_usage({"ai.usage.promptTokens": 12, "ai.usage.completionTokens": 3})
        assert usage == CanonicalUsage(input=12, output=3)

    def test_dedicated_cached_attribute(self, make_attrs):
        usage = extract_sdk_usage(make_attrs(**{"ai.usage.cachedInputTokens": 25}))
        assert usage.cache_read == 25


class TestAnthropic:
    def test_metadata_json_string(self, make_attrs):
        attrs = with_metadata(make_attrs, "anthropic", json.dumps(ANTHROPIC_METADATA))
        normalized = normalize_provider_tokens("anthropic", attrs, BASE_USAGE)
        assert normalized == CanonicalUsage(input=100, output=10, cache_read=2903, cache_write=0)

    def test_metadata_object(self, make_attrs):
        attrs = with_metadata(make_attrs, "anthropic", ANTHROPIC_METADATA)
        normalized = normalize_provider_tokens("anthropic", attrs, BASE_USAGE)
        assert normalized == CanonicalUsage(input=100, output=10, cache_read=2903, cache_write=0)

    def test_output_always_from_sdk(self, make_attrs):
        metadata = {"anthropic": {"usage": {"output_tokens": 1, "cache_read_input_tokens": 0}}}
        attrs = with_metadata(make_attrs, "anthropic", metadata)
        normalized = normalize_provider_tokens("anthropic", attrs, CanonicalUsage(input=4, output=138))
        assert normalized.output == 138

    def test_sibling_cache_creation_field(self, make_attrs):
        metadata = {"anthropic": {"usage": {"cache_read_input_tokens": 0}, "cacheCreationInputTokens": 512}}
        attrs = with_metadata(make_attrs, "anthropic", metadata)
        normalized = normalize_provider_tokens("anthropic", attrs, BASE_USAGE)
        assert normalized.cache_write == 512

    def test_cache_read_falls_back_to_sdk(self, make_attrs):
        metadata = {"anthropic": {"usage": {"cache_creation_input_tokens": 30}}}
        attrs = with_metadata(make_attrs, "anthropic", metadata)
        sdk = CanonicalUsage(input=100, output=10, cache_read=7)
        assert normalize_provider_tokens("anthropic", attrs, sdk) == CanonicalUsage(100, 10, 7, 30)

    def test_invalid_json_returns_sdk_usage(self, make_attrs):
        attrs = with_metadata(make_attrs, "anthropic", '{"invalid": }')
        assert normalize_provider_tokens("anthropic", attrs, BASE_USAGE) == BASE_USAGE

    def test_no_anthropic_key_returns_sdk_usage(self, make_attrs):
        attrs = with_metadata(make_attrs, "anthropic", {"other": {}})
        assert normalize_provider_tokens("anthropic", attrs, BASE_USAGE) == BASE_USAGE


class TestOpenAI:
    def test_metadata_wins_over_dedicated_attribute(self, make_attrs):
        attrs = with_metadata(
            make_attrs, "openai", json.dumps(OPENAI_METADATA), **{"ai.usage.cachedInputTokens": 25}
        )
        normalized = normalize_provider_tokens("openai", attrs, CanonicalUsage(input=200, output=20))
        assert normalized == CanonicalUsage(input=150, output=20, cache_read=50, cache_write=0)

    def test_metadata_object(self, make_attrs):
        attrs = with_metadata(make_attrs, "openai", OPENAI_METADATA)
        normalized = normalize_provider_tokens("openai", attrs, CanonicalUsage(input=180, output=18))
        assert normalized == CanonicalUsage(input=130, output=18, cache_read=50, cache_write=0)

    def test_prompt_tokens_details(self, make_attrs):
        metadata = {"openai": {"usage": {"prompt_tokens_details": {"cached_tokens": 64}}}}
        attrs = with_metadata(make_attrs, "openai", metadata)
        normalized = normalize_provider_tokens("openai.chat", attrs, CanonicalUsage(input=100, output=5))
        assert normalized == CanonicalUsage(input=36, output=5, cache_read=64)

    def test_dedicated_attribute_without_metadata(self, make_attrs):
        attrs = make_attrs(provider="openai", **{"ai.usage.cachedInputTokens": 2048})
        normalized = normalize_provider_tokens("openai", attrs, CanonicalUsage(input=2221, output=444))
        assert normalized == CanonicalUsage(input=173, output=444, cache_read=2048, cache_write=0)

    def test_subtraction_floors_at_zero(self, make_attrs):
        attrs = make_attrs(provider="openai", **{"ai.usage.cachedInputTokens": 500})
        normalized = normalize_provider_tokens("openai", attrs, CanonicalUsage(input=100, output=1))
        assert normalized.input == 0
        assert normalized.cache_read == 500

    def test_no_cache_information(self, make_attrs):
        attrs = make_attrs(provider="openai")
        usage = CanonicalUsage(input=2221, output=563)
        assert normalize_provider_tokens("openai", attrs, usage) == usage


class TestGoogle:
    def test_cached_content_token_count(self, make_attrs):
        attrs = with_metadata(make_attrs, "google", json.dumps(GOOGLE_METADATA))
        normalized = normalize_provider_tokens("google", attrs, CanonicalUsage(input=220, output=10))
        assert normalized == CanonicalUsage(input=100, output=10, cache_read=120, cache_write=0)

    def test_gemini_provider_string(self, make_attrs):
        attrs = make_attrs(provider="vertex.gemini", **{"ai.usage.cachedTokens": 20})
        normalized = normalize_provider_tokens("vertex.gemini", attrs, CanonicalUsage(input=50, output=1))
        assert normalized == CanonicalUsage(input=30, output=1, cache_read=20)


class TestXaiAndMistral:
    def test_xai_cached_tokens(self, make_attrs):
        metadata = {"xai": {"usage": {"cached_tokens": 40}}}
        attrs = with_metadata(make_attrs, "xai", metadata)
        normalized = normalize_provider_tokens("xai", attrs, CanonicalUsage(input=100, output=3))
        assert normalized == CanonicalUsage(input=60, output=3, cache_read=40)

    def test_grok_key(self, make_attrs):
        metadata = {"grok": {"usage": {"prompt_tokens_details": {"cached_tokens": 10}}}}
        attrs = with_metadata(make_attrs, "xai", metadata)
        normalized = normalize_provider_tokens("xai.chat", attrs, CanonicalUsage(input=100, output=3))
        assert normalized.cache_read == 10
        assert normalized.input == 90

    def test_mistral_cached_tokens(self, make_attrs):
        metadata = {"mistral": {"usage": {"cached_tokens": 8}}}
        attrs = with_metadata(make_attrs, "mistral", metadata)
        normalized = normalize_provider_tokens("mistral", attrs, CanonicalUsage(input=8, output=2))
        assert normalized == CanonicalUsage(input=0, output=2, cache_read=8)


class TestUnknownProvider:
    def test_pass_through(self, make_attrs):
        attrs = make_attrs(provider="cohere", **{"ai.usage.cachedInputTokens": 40})
        usage = CanonicalUsage(input=100, output=10, cache_read=40)
        assert normalize_provider_tokens("cohere", attrs, usage) is usage

    def test_missing_provider(self):
        assert normalize_provider_tokens(None, {}, BASE_USAGE) is BASE_USAGE
