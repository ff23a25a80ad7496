"""Cost calculation based on model pricing and canonical token usage."""

from __future__ import annotations

import re
from typing import List, Mapping, Optional

from spancost.models import CanonicalUsage, PriceEntry

_TOKENS_PER_RATE_UNIT = 1_000_000
_PROVIDER_FRAGMENT = re.compile(r"[a-z0-9]+")
_PROVIDER_SEPARATORS = ("/", ":", "-")


def provider_fragment(provider: Optional[str]) -> str:
    """Leading alphanumeric run of a provider string: "openai.responses" -> "openai"."""
    if not provider:
        return ""
    match = _PROVIDER_FRAGMENT.match(str(provider).lower())
    return match.group(0) if match else ""


def candidate_price_keys(provider: Optional[str], model: str) -> List[str]:
    """
    Return the catalog keys tried for (provider, model), in lookup order.

    The bare model id comes first, then provider-qualified forms:
    e.g. ("anthropic", "claude-3-haiku") ->
         ["claude-3-haiku", "anthropic/claude-3-haiku",
          "anthropic:claude-3-haiku", "anthropic-claude-3-haiku"]
    """
    normalized_model = str(model).lower()
    keys = [normalized_model]
    fragment = provider_fragment(provider)
    if fragment:
        for separator in _PROVIDER_SEPARATORS:
            key = f"{fragment}{separator}{normalized_model}"
            if key not in keys:
                keys.append(key)
    return keys


def lookup_price(
    provider: Optional[str], model: str, prices: Mapping[str, PriceEntry]
) -> Optional[PriceEntry]:
    """Return the first price entry matching a candidate key, or None."""
    if not model or not prices:
        return None
    for key in candidate_price_keys(provider, model):
        entry = prices.get(key)
        if entry is not None:
            return entry
    return None


def _rate(value: Optional[float]) -> float:
    return float(value) if value is not None else 0.0


def compute_cost_cents(usage: CanonicalUsage, price: Optional[PriceEntry]) -> Optional[float]:
    """
    Cost of ``usage`` in US cents, or None when no price is known.

    An unknown price is never reported as zero cost.
    """
    if price is None:
        return None
    cost_usd = (
        usage.input * _rate(price.prompt_per_1m_usd) / _TOKENS_PER_RATE_UNIT
        + usage.output * _rate(price.completion_per_1m_usd) / _TOKENS_PER_RATE_UNIT
        + usage.cache_read * _rate(price.input_cache_read_per_1m_usd) / _TOKENS_PER_RATE_UNIT
        + usage.cache_write * _rate(price.input_cache_write_per_1m_usd) / _TOKENS_PER_RATE_UNIT
        + _rate(price.request_usd)
    )
    # 12 decimals in USD, then 6 decimals in cents.
    cost_usd = round(cost_usd, 12)
    return round(cost_usd * 100, 6)
