"""Value types passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class CanonicalUsage:
    """Provider-agnostic token breakdown.

    ``input`` counts only new prompt tokens; tokens served from the provider
    cache are reported under ``cache_read`` and never double-counted.
    """

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0


class PriceEntry(BaseModel):
    """Per-model billing rates in USD. Token rates are per one million tokens."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    model: str
    prompt_per_1m_usd: Optional[float] = None
    completion_per_1m_usd: Optional[float] = None
    request_usd: Optional[float] = None
    image_usd: Optional[float] = None
    web_search_usd: Optional[float] = None
    internal_reasoning_usd: Optional[float] = None
    input_cache_read_per_1m_usd: Optional[float] = None
    input_cache_write_per_1m_usd: Optional[float] = None
    extras: Optional[Dict[str, Optional[float]]] = None


PriceMap = Mapping[str, PriceEntry]


@dataclass(frozen=True)
class UsageContext:
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None


@dataclass(frozen=True)
class TokenLog:
    """One usage record per billable span."""

    time: str
    model: str
    input: int
    output: int
    cache_read: int
    cache_write: int
    provider: Optional[str] = None
    cost_cents: Optional[float] = None
    finish_reason: Optional[str] = None
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Render the wire shape consumed by sinks (camelCase trace identifiers)."""
        data: Dict[str, Any] = {
            "time": self.time,
            "provider": self.provider,
            "model": self.model,
            "input": self.input,
            "output": self.output,
            "cache_read": self.cache_read,
            "cache_write": self.cache_write,
            "cost_cents": self.cost_cents,
            "finish_reason": self.finish_reason,
            "user_id": self.user_id,
            "workspace_id": self.workspace_id,
            "traceId": self.trace_id,
            "spanId": self.span_id,
        }
        if self.attributes is not None:
            data["attributes"] = self.attributes
        return data
