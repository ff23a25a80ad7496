"""Provider-specific token normalization.

SDK-reported usage is inconsistent across providers. The rules here turn it
into a ``CanonicalUsage`` where:

- input: new prompt tokens only (cached tokens excluded)
- output: generated tokens, reasoning included
- cache_read: prompt tokens served from the provider cache
- cache_write: prompt tokens newly written to the provider cache

Known defects corrected:

- Anthropic provider metadata under-reports ``output_tokens``; the SDK count
  is authoritative. Cache writes are only visible in provider metadata.
- OpenAI, Gemini, xAI and Mistral report prompt tokens *including* cache
  reads, so the cached amount is subtracted from input (floored at zero).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from spancost.models import CanonicalUsage
from spancost.utils.attributes import (
    Parsed,
    Raw,
    decode_json_value,
    get_attr,
    pick_mapping,
    pick_number,
    to_finite_number,
    to_token_count,
)

logger = logging.getLogger(__name__)

PROVIDER_METADATA_KEYS = (
    "ai.response.providerMetadata",
    "gen_ai.response.provider_metadata",
)

INPUT_TOKEN_KEYS = (
    "gen_ai.usage.input_tokens",
    "ai.usage.promptTokens",
    "ai.usage.inputTokens",
)

OUTPUT_TOKEN_KEYS = (
    "gen_ai.usage.output_tokens",
    "ai.usage.completionTokens",
    "ai.usage.outputTokens",
)

CACHED_INPUT_KEYS = (
    "ai.usage.cachedInputTokens",
    "ai.usage.cachedTokens",
    "gen_ai.usage.cached_input_tokens",
    "gen_ai.usage.cached_tokens",
)


class ProviderFamily(Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    XAI = "xai"
    MISTRAL = "mistral"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, provider: Optional[str]) -> "ProviderFamily":
        """Match a provider string (e.g. "openai.responses") against the known families."""
        if not provider:
            return cls.UNKNOWN
        lowered = str(provider).lower()
        for family, markers in _FAMILY_MARKERS:
            if any(marker in lowered for marker in markers):
                return family
        return cls.UNKNOWN


# Checked in order; the first family with a matching marker wins.
_FAMILY_MARKERS: Tuple[Tuple[ProviderFamily, Tuple[str, ...]], ...] = (
    (ProviderFamily.ANTHROPIC, ("anthropic",)),
    (ProviderFamily.OPENAI, ("openai",)),
    (ProviderFamily.GOOGLE, ("google", "gemini")),
    (ProviderFamily.XAI, ("xai", "grok")),
    (ProviderFamily.MISTRAL, ("mistral",)),
)


def extract_sdk_usage(attrs: Mapping[str, Any]) -> CanonicalUsage:
    """Read the usage the SDK reported on the span, before any correction."""
    return CanonicalUsage(
        input=to_token_count(get_attr(attrs, INPUT_TOKEN_KEYS)),
        output=to_token_count(get_attr(attrs, OUTPUT_TOKEN_KEYS)),
        cache_read=to_token_count(get_attr(attrs, CACHED_INPUT_KEYS)),
        cache_write=0,
    )


def _count(value: Any) -> Optional[int]:
    number = to_finite_number(value)
    if number is None:
        return None
    return max(0, int(number))


def _dedicated_cached_tokens(attrs: Mapping[str, Any]) -> Optional[int]:
    return _count(get_attr(attrs, CACHED_INPUT_KEYS))


def _split_cached_input(sdk_usage: CanonicalUsage, cache_read: Optional[int]) -> CanonicalUsage:
    """Remove cache reads that the provider folded into the prompt count."""
    if cache_read is None:
        return sdk_usage
    return CanonicalUsage(
        input=max(0, sdk_usage.input - cache_read),
        output=sdk_usage.output,
        cache_read=cache_read,
        cache_write=0,
    )


def _normalize_anthropic(
    metadata: Mapping[str, Any], attrs: Mapping[str, Any], sdk_usage: CanonicalUsage
) -> CanonicalUsage:
    anthropic = pick_mapping(metadata, ["anthropic"])
    if anthropic is None:
        return sdk_usage
    usage = pick_mapping(anthropic, ["usage"]) or {}

    cache_read = _count(pick_number(usage, ["cache_read_input_tokens", "cacheReadInputTokens"]))
    cache_write = _count(pick_number(usage, ["cache_creation_input_tokens", "cacheCreationInputTokens"]))
    if cache_write is None:
        cache_write = _count(pick_number(anthropic, ["cacheCreationInputTokens", "cache_creation_input_tokens"]))
    if cache_read is None and cache_write is None:
        return sdk_usage

    # Input already excludes cache tokens for this family; output comes from the SDK.
    return CanonicalUsage(
        input=sdk_usage.input,
        output=sdk_usage.output,
        cache_read=sdk_usage.cache_read if cache_read is None else cache_read,
        cache_write=cache_write or 0,
    )


def _normalize_openai(
    metadata: Mapping[str, Any], attrs: Mapping[str, Any], sdk_usage: CanonicalUsage
) -> CanonicalUsage:
    openai = pick_mapping(metadata, ["openai"]) or {}
    usage = pick_mapping(openai, ["usage"]) or {}
    details = pick_mapping(usage, ["prompt_tokens_details", "input_tokens_details"]) or {}

    cached = _count(pick_number(usage, ["cached_input_tokens", "cachedInputTokens"]))
    if cached is None:
        cached = _count(pick_number(details, ["cached_tokens", "cachedTokens"]))
    if cached is None:
        cached = _count(pick_number(openai, ["cachedPromptTokens", "cached_prompt_tokens"]))
    if cached is None:
        cached = _dedicated_cached_tokens(attrs)
    return _split_cached_input(sdk_usage, cached)


def _normalize_google(
    metadata: Mapping[str, Any], attrs: Mapping[str, Any], sdk_usage: CanonicalUsage
) -> CanonicalUsage:
    google = pick_mapping(metadata, ["google"]) or {}
    usage_metadata = pick_mapping(google, ["usageMetadata", "usage_metadata"]) or {}

    cached = _count(pick_number(usage_metadata, ["cachedContentTokenCount", "cached_content_token_count"]))
    if cached is None:
        cached = _dedicated_cached_tokens(attrs)
    # Gemini caching is implicit, so there is never a cache write to report.
    return _split_cached_input(sdk_usage, cached)


def _normalize_xai(
    metadata: Mapping[str, Any], attrs: Mapping[str, Any], sdk_usage: CanonicalUsage
) -> CanonicalUsage:
    cached = None
    for key in ("xai", "grok"):
        usage = pick_mapping(pick_mapping(metadata, [key]), ["usage"])
        cached = _count(pick_number(usage, ["cached_tokens", "cachedTokens"]))
        if cached is None:
            details = pick_mapping(usage, ["prompt_tokens_details"])
            cached = _count(pick_number(details, ["cached_tokens"]))
        if cached is not None:
            break
    if cached is None:
        cached = _dedicated_cached_tokens(attrs)
    return _split_cached_input(sdk_usage, cached)


def _normalize_mistral(
    metadata: Mapping[str, Any], attrs: Mapping[str, Any], sdk_usage: CanonicalUsage
) -> CanonicalUsage:
    usage = pick_mapping(pick_mapping(metadata, ["mistral"]), ["usage"])
    cached = _count(pick_number(usage, ["cached_tokens", "cachedTokens"]))
    if cached is None:
        cached = _dedicated_cached_tokens(attrs)
    return _split_cached_input(sdk_usage, cached)


Rule = Callable[[Mapping[str, Any], Mapping[str, Any], CanonicalUsage], CanonicalUsage]

_RULES: Dict[ProviderFamily, Rule] = {
    ProviderFamily.ANTHROPIC: _normalize_anthropic,
    ProviderFamily.OPENAI: _normalize_openai,
    ProviderFamily.GOOGLE: _normalize_google,
    ProviderFamily.XAI: _normalize_xai,
    ProviderFamily.MISTRAL: _normalize_mistral,
}


def normalize_provider_tokens(
    provider: Optional[str],
    attrs: Optional[Mapping[str, Any]],
    sdk_usage: CanonicalUsage,
) -> CanonicalUsage:
    """
    Correct SDK-reported usage for the provider family that served the call.

    Unknown providers, and provider metadata that is present but not valid
    JSON, leave the SDK usage untouched. Never raises on malformed input.
    """
    family = ProviderFamily.from_provider(provider)
    rule = _RULES.get(family)
    if rule is None:
        return sdk_usage

    attrs = attrs or {}
    decoded = decode_json_value(get_attr(attrs, PROVIDER_METADATA_KEYS))
    if isinstance(decoded, Raw):
        logger.debug("Unparseable provider metadata for %s; using SDK usage", provider)
        return sdk_usage
    metadata = decoded.value if isinstance(decoded, Parsed) else {}
    return rule(metadata, attrs, sdk_usage)
