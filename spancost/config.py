"""Configuration loading: TOML file, environment variables, explicit overrides.

Priority (highest first): explicit overrides > environment > config file > defaults.

Example ``spancost.toml``::

    [exporter]
    include_attributes = false
    user_id_attributes = ["app.user.id"]

    [exporter.model_mapping]
    "internal/llm-gateway" = "gpt-4o"

    [pricing]
    file = "prices.json"

    [logging]
    debug = false
"""

from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from spancost.errors import ConfigError

CONFIG_FILE_NAME = "spancost.toml"

ENV_INCLUDE_ATTRIBUTES = "SPANCOST_INCLUDE_ATTRIBUTES"
ENV_MODEL_MAPPING_JSON = "SPANCOST_MODEL_MAPPING_JSON"
ENV_USER_ID_ATTRIBUTES = "SPANCOST_USER_ID_ATTRIBUTES"
ENV_WORKSPACE_ID_ATTRIBUTES = "SPANCOST_WORKSPACE_ID_ATTRIBUTES"
ENV_PRICING_FILE = "SPANCOST_PRICING_FILE"
ENV_DEBUG = "SPANCOST_DEBUG"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ExporterConfig(BaseModel):
    """Options for TokenCostExporter. None attribute lists mean "use the defaults"."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    user_id_attributes: Optional[List[str]] = None
    workspace_id_attributes: Optional[List[str]] = None
    model_mapping: Dict[str, str] = Field(default_factory=dict)
    include_attributes: bool = False

    @field_validator("user_id_attributes", "workspace_id_attributes")
    @classmethod
    def _drop_blank_keys(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [key.strip() for key in value if key and key.strip()]

    @field_validator("model_mapping")
    @classmethod
    def _non_empty_targets(cls, value: Dict[str, str]) -> Dict[str, str]:
        for source, target in value.items():
            if not target or not target.strip():
                raise ValueError(f"model_mapping[{source!r}] must be a non-empty model id")
        return value


class PricingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    file: Optional[str] = None


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    debug: bool = False


class SpanCostConfig(BaseModel):
    """Root configuration object."""

    model_config = ConfigDict(extra="forbid")

    exporter: ExporterConfig = Field(default_factory=ExporterConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_toml_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a TOML config file.

    Returns:
        Nested dict of the file contents, or {} if the file does not exist.

    Raises:
        ConfigError: if the file is not valid TOML.
    """
    path = Path(path)
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}", details={"error": str(exc)}) from exc


def find_config_file() -> Optional[str]:
    """Look for spancost.toml in the current directory, then the home directory."""
    for candidate in (Path.cwd() / CONFIG_FILE_NAME, Path.home() / CONFIG_FILE_NAME):
        if candidate.is_file():
            return str(candidate)
    return None


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean", details={"value": raw})


def _parse_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_config_from_env(flat: bool = False) -> Dict[str, Any]:
    """
    Read configuration from SPANCOST_* environment variables.

    Only variables that are set appear in the result.

    Args:
        flat: return {"include_attributes": ...} instead of the nested
              {"exporter": {...}} layout used by the config file.
    """
    exporter: Dict[str, Any] = {}
    pricing: Dict[str, Any] = {}
    logging_section: Dict[str, Any] = {}

    raw = os.getenv(ENV_INCLUDE_ATTRIBUTES)
    if raw is not None:
        exporter["include_attributes"] = _parse_bool(ENV_INCLUDE_ATTRIBUTES, raw)
    raw = os.getenv(ENV_MODEL_MAPPING_JSON)
    if raw:
        try:
            mapping = json.loads(raw)
        except ValueError as exc:
            raise ConfigError(f"{ENV_MODEL_MAPPING_JSON} is not valid JSON") from exc
        if not isinstance(mapping, dict):
            raise ConfigError(f"{ENV_MODEL_MAPPING_JSON} must be a JSON object")
        exporter["model_mapping"] = mapping
    raw = os.getenv(ENV_USER_ID_ATTRIBUTES)
    if raw is not None:
        exporter["user_id_attributes"] = _parse_list(raw)
    raw = os.getenv(ENV_WORKSPACE_ID_ATTRIBUTES)
    if raw is not None:
        exporter["workspace_id_attributes"] = _parse_list(raw)
    raw = os.getenv(ENV_PRICING_FILE)
    if raw:
        pricing["file"] = raw
    raw = os.getenv(ENV_DEBUG)
    if raw is not None:
        logging_section["debug"] = _parse_bool(ENV_DEBUG, raw)

    if flat:
        flat_config = dict(exporter)
        if "file" in pricing:
            flat_config["pricing_file"] = pricing["file"]
        if "debug" in logging_section:
            flat_config["debug"] = logging_section["debug"]
        return flat_config

    nested: Dict[str, Any] = {}
    if exporter:
        nested["exporter"] = exporter
    if pricing:
        nested["pricing"] = pricing
    if logging_section:
        nested["logging"] = logging_section
    return nested


def _merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict) and key != "model_mapping":
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> SpanCostConfig:
    """
    Load and validate configuration.

    Args:
        config_file: explicit TOML path; when None, find_config_file() is used
        overrides: nested dict applied last, e.g. {"exporter": {"include_attributes": True}}

    Raises:
        ConfigError: on invalid TOML, invalid env values, or failed validation.
    """
    path = config_file if config_file is not None else find_config_file()
    data: Dict[str, Any] = load_toml_config(path) if path else {}
    data = _merge(data, load_config_from_env())
    if overrides:
        data = _merge(data, overrides)
    try:
        return SpanCostConfig.model_validate(data)
    except PydanticValidationError as exc:
        raise ConfigError(
            "Invalid spancost configuration",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc


def validate_config(
    config_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Tuple[bool, str, Optional[SpanCostConfig]]:
    """Like load_config, but report problems instead of raising."""
    try:
        config = load_config(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        return False, str(exc), None
    return True, "Configuration is valid", config
