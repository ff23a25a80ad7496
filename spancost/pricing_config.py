"""Price catalog loading with optional file and env overrides.

Pricing should be treated as configuration, not source code: vendors update
prices and model versions frequently. The package therefore supports:
- a packaged snapshot (DEFAULT_PRICES)
- a JSON catalog file (ExporterConfig.pricing_file / SPANCOST_PRICING_FILE)
- env override: SPANCOST_PRICING_JSON
- direct override via load_prices(override=...)

Every layer is a JSON object keyed by model id; keys are lowercased so the
resulting PriceMap is case-insensitive by construction.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from spancost.errors import PricingError
from spancost.models import PriceEntry

logger = logging.getLogger(__name__)

PRICING_ENV_VAR = "SPANCOST_PRICING_JSON"

# USD per one million tokens. Snapshot of public list prices; refresh via a catalog file.
DEFAULT_PRICES: Dict[str, Dict[str, Any]] = {
    "openai/gpt-4o": {
        "prompt_per_1m_usd": 2.5,
        "completion_per_1m_usd": 10.0,
        "input_cache_read_per_1m_usd": 1.25,
    },
    "openai/gpt-4o-mini": {
        "prompt_per_1m_usd": 0.15,
        "completion_per_1m_usd": 0.6,
        "input_cache_read_per_1m_usd": 0.075,
    },
    "openai/gpt-4.1": {
        "prompt_per_1m_usd": 2.0,
        "completion_per_1m_usd": 8.0,
        "input_cache_read_per_1m_usd": 0.5,
    },
    "openai/gpt-4.1-mini": {
        "prompt_per_1m_usd": 0.4,
        "completion_per_1m_usd": 1.6,
        "input_cache_read_per_1m_usd": 0.1,
    },
    "anthropic/claude-3-haiku-20240307": {
        "prompt_per_1m_usd": 0.25,
        "completion_per_1m_usd": 1.25,
        "input_cache_read_per_1m_usd": 0.03,
        "input_cache_write_per_1m_usd": 0.3,
    },
    "anthropic/claude-3-5-haiku-20241022": {
        "prompt_per_1m_usd": 0.8,
        "completion_per_1m_usd": 4.0,
        "input_cache_read_per_1m_usd": 0.08,
        "input_cache_write_per_1m_usd": 1.0,
    },
    "anthropic/claude-3-5-sonnet-20241022": {
        "prompt_per_1m_usd": 3.0,
        "completion_per_1m_usd": 15.0,
        "input_cache_read_per_1m_usd": 0.3,
        "input_cache_write_per_1m_usd": 3.75,
    },
    "google/gemini-2.0-flash-001": {
        "prompt_per_1m_usd": 0.1,
        "completion_per_1m_usd": 0.4,
        "input_cache_read_per_1m_usd": 0.025,
    },
    "google/gemini-2.5-flash": {
        "prompt_per_1m_usd": 0.3,
        "completion_per_1m_usd": 2.5,
        "input_cache_read_per_1m_usd": 0.075,
    },
    "x-ai/grok-4-fast": {
        "prompt_per_1m_usd": 0.2,
        "completion_per_1m_usd": 0.5,
        "input_cache_read_per_1m_usd": 0.05,
    },
    "x-ai/grok-3-mini": {
        "prompt_per_1m_usd": 0.3,
        "completion_per_1m_usd": 0.5,
        "input_cache_read_per_1m_usd": 0.075,
    },
    "mistralai/mistral-large": {
        "prompt_per_1m_usd": 2.0,
        "completion_per_1m_usd": 6.0,
    },
    "mistralai/mistral-medium-3": {
        "prompt_per_1m_usd": 0.4,
        "completion_per_1m_usd": 2.0,
    },
}

PricingSource = Literal["default", "file", "env", "override"]

RawCatalog = Mapping[str, Union[PriceEntry, Mapping[str, Any]]]


def _lowercase_keys(raw: RawCatalog) -> Dict[str, Any]:
    return {str(key).lower(): value for key, value in raw.items()}


def with_short_aliases(raw: RawCatalog) -> Dict[str, Any]:
    """Add "gpt-4o" style aliases for "openai/gpt-4o" keys, never replacing an explicit key."""
    expanded = _lowercase_keys(raw)
    for key, value in list(expanded.items()):
        if "/" in key:
            expanded.setdefault(key.rsplit("/", 1)[-1], value)
    return expanded


def build_price_map(raw: RawCatalog) -> Dict[str, PriceEntry]:
    """
    Validate a raw catalog into a PriceMap with lowercase keys.

    Entries without a ``model`` field take their catalog key as the model id.

    Raises:
        PricingError: if an entry is not a valid price entry.
    """
    prices: Dict[str, PriceEntry] = {}
    for key, value in raw.items():
        normalized_key = str(key).lower()
        if isinstance(value, PriceEntry):
            prices[normalized_key] = value
            continue
        if not isinstance(value, Mapping):
            raise PricingError("Price entry must be an object", details={"key": key})
        payload = dict(value)
        payload.setdefault("model", str(key))
        try:
            prices[normalized_key] = PriceEntry.model_validate(payload)
        except PydanticValidationError as exc:
            raise PricingError(
                "Invalid price entry", details={"key": key, "errors": exc.error_count()}
            ) from exc
    return prices


@lru_cache(maxsize=1)
def _packaged_prices() -> Dict[str, PriceEntry]:
    return with_short_aliases(build_price_map(DEFAULT_PRICES))


def packaged_prices() -> Dict[str, PriceEntry]:
    """Return a copy of the packaged snapshot as a PriceMap."""
    return dict(_packaged_prices())


def load_pricing_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a JSON catalog file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as exc:
        raise PricingError("Cannot read pricing file", details={"path": str(path)}) from exc
    except ValueError as exc:
        raise PricingError("Pricing file is not valid JSON", details={"path": str(path)}) from exc
    if not isinstance(data, dict):
        raise PricingError("Pricing file must contain a JSON object", details={"path": str(path)})
    return data


def _expand_layer(raw: RawCatalog) -> Dict[str, PriceEntry]:
    return with_short_aliases(build_price_map(raw))


def load_prices_with_source(
    override: Optional[RawCatalog] = None,
    pricing_file: Optional[Union[str, Path]] = None,
) -> Tuple[Dict[str, PriceEntry], PricingSource]:
    """
    Return (price_map, source_of_latest_override).

    Layers apply in order packaged < file < env < override. Each layer is
    expanded with its own short aliases before merging, so a later
    "openai/gpt-4o" entry also replaces an earlier "gpt-4o" alias.
    """
    prices: Dict[str, PriceEntry] = dict(_packaged_prices())
    source: PricingSource = "default"

    if pricing_file:
        prices.update(_expand_layer(load_pricing_file(pricing_file)))
        source = "file"

    env_override = os.getenv(PRICING_ENV_VAR)
    if env_override:
        try:
            env_pricing = json.loads(env_override)
        except ValueError:
            logger.warning("Ignoring %s: not valid JSON", PRICING_ENV_VAR)
        else:
            if isinstance(env_pricing, dict):
                prices.update(_expand_layer(env_pricing))
                source = "env"
    if override:
        prices.update(_expand_layer(override))
        source = "override"
    return prices, source


def load_prices(
    override: Optional[RawCatalog] = None,
    pricing_file: Optional[Union[str, Path]] = None,
) -> Dict[str, PriceEntry]:
    """Helper returning only the price map."""
    prices, _ = load_prices_with_source(override, pricing_file)
    return prices
