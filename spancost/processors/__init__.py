"""Pipeline stages: classification, usage normalization, pricing, context resolution."""

from spancost.processors.classifier import (
    BILLABLE_OPERATIONS,
    CallSpanView,
    classify_span,
    has_call_attributes,
    is_billable_name,
)
from spancost.processors.context_resolver import (
    DEFAULT_USER_ID_ATTRIBUTES,
    DEFAULT_WORKSPACE_ID_ATTRIBUTES,
    ContextCallback,
    resolve_context,
)
from spancost.processors.cost_engine import (
    candidate_price_keys,
    compute_cost_cents,
    lookup_price,
    provider_fragment,
)
from spancost.processors.usage_normalizer import (
    ProviderFamily,
    extract_sdk_usage,
    normalize_provider_tokens,
)

__all__ = [
    "BILLABLE_OPERATIONS",
    "CallSpanView",
    "classify_span",
    "has_call_attributes",
    "is_billable_name",
    "DEFAULT_USER_ID_ATTRIBUTES",
    "DEFAULT_WORKSPACE_ID_ATTRIBUTES",
    "ContextCallback",
    "resolve_context",
    "candidate_price_keys",
    "compute_cost_cents",
    "lookup_price",
    "provider_fragment",
    "ProviderFamily",
    "extract_sdk_usage",
    "normalize_provider_tokens",
]
