"""Validation for per-call telemetry metadata (userId / workspaceId / modelName overrides)."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from spancost.errors import ValidationError
from spancost.models import PriceEntry
from spancost.pricing_config import packaged_prices
from spancost.utils.attributes import parse_maybe_json


class CostMetadata(BaseModel):
    """Metadata a caller attaches to an LLM call. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, protected_namespaces=())

    user_id: Optional[str] = Field(default=None, alias="userId", min_length=1)
    workspace_id: Optional[str] = Field(default=None, alias="workspaceId", min_length=1)
    model_name: Optional[str] = Field(default=None, alias="modelName", min_length=1)


def known_models(prices: Optional[Mapping[str, PriceEntry]] = None) -> List[str]:
    prices = packaged_prices() if prices is None else prices
    return list(prices.keys())


def is_known_model(name: str, prices: Optional[Mapping[str, PriceEntry]] = None) -> bool:
    prices = packaged_prices() if prices is None else prices
    return str(name).lower() in prices


def validate_metadata(
    data: Any, prices: Optional[Mapping[str, PriceEntry]] = None
) -> CostMetadata:
    """
    Validate telemetry metadata before attaching it to a call.

    Args:
        data: mapping, or JSON string encoding one
        prices: catalog used to check ``modelName`` (default: packaged snapshot)

    Raises:
        ValidationError: on a malformed payload or an unknown modelName.
    """
    if isinstance(data, str):
        data = parse_maybe_json(data)
    if not isinstance(data, Mapping):
        raise ValidationError("Telemetry metadata must be an object")
    try:
        metadata = CostMetadata.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid telemetry metadata",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc
    if metadata.model_name is not None and not is_known_model(metadata.model_name, prices):
        raise ValidationError(
            f'Unknown modelName "{metadata.model_name}". '
            "Ensure the override matches a model id in the price catalog.",
            details={"model": metadata.model_name},
        )
    return metadata
