"""Decide whether an ended span is a billable provider call."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from spancost.utils.attributes import get_str_attr

BILLABLE_OPERATIONS = (
    "ai.generateText.doGenerate",
    "ai.streamText.doStream",
    "ai.generateObject.doGenerate",
    "ai.streamObject.doStream",
)

OPERATION_NAME = "operation.name"
OPERATION_ID = "ai.operationId"
MODEL_ID = "ai.model.id"
MODEL_PROVIDER = "ai.model.provider"
SYSTEM = "gen_ai.system"
REQUEST_MODEL = "gen_ai.request.model"
INPUT_TOKENS = "gen_ai.usage.input_tokens"
OUTPUT_TOKENS = "gen_ai.usage.output_tokens"

PROVIDER_KEYS = (SYSTEM, MODEL_PROVIDER)


@dataclass(frozen=True)
class CallSpanView:
    """Typed read-only view over the attributes of a billable span."""

    name: str
    attributes: Mapping[str, Any]

    @property
    def provider(self) -> Optional[str]:
        """``gen_ai.system``, falling back to ``ai.model.provider`` when blank."""
        return get_str_attr(self.attributes, PROVIDER_KEYS)


def is_billable_name(name: Optional[str]) -> bool:
    if not name:
        return False
    return any(operation in name for operation in BILLABLE_OPERATIONS)


def _has_string(attrs: Mapping[str, Any], key: str, *, non_empty: bool = False) -> bool:
    value = attrs.get(key)
    if not isinstance(value, str):
        return False
    return bool(value) if non_empty else True


def _has_number(attrs: Mapping[str, Any], key: str) -> bool:
    value = attrs.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def has_call_attributes(attrs: Optional[Mapping[str, Any]]) -> bool:
    """Check the minimum attribute shape of a provider call span."""
    if not isinstance(attrs, Mapping):
        return False
    return (
        _has_string(attrs, OPERATION_NAME, non_empty=True)
        and _has_string(attrs, OPERATION_ID, non_empty=True)
        and _has_string(attrs, MODEL_ID)
        and _has_string(attrs, MODEL_PROVIDER)
        and _has_string(attrs, SYSTEM)
        and _has_string(attrs, REQUEST_MODEL)
        and _has_number(attrs, INPUT_TOKENS)
        and _has_number(attrs, OUTPUT_TOKENS)
    )


def classify_span(span: Any) -> Optional[CallSpanView]:
    """
    Return a typed view when ``span`` is a billable provider call.

    Spans whose name does not match a billable operation, or whose
    attributes lack the minimum shape, return None and produce no log.
    """
    name = getattr(span, "name", None) or ""
    if not is_billable_name(name):
        return None
    attrs = getattr(span, "attributes", None) or {}
    if not has_call_attributes(attrs):
        return None
    return CallSpanView(name=name, attributes=attrs)
