"""Ordered-fallback lookups over span attribute bags.

OpenTelemetry flattens structured telemetry into dotted keys
(``ai.telemetry.metadata.userId``), but instrumentations are inconsistent:
some publish the dotted key directly, others publish the root
(``ai.telemetry.metadata``) as a JSON-encoded string or a nested mapping.
``get_attr`` hides that difference from the rest of the pipeline.

Nothing in this module raises on malformed input. A value that cannot be
decoded is reported as "not found".
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence, Union


@dataclass(frozen=True)
class Parsed:
    """A JSON-string-or-object attribute that decoded to a mapping."""

    value: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Raw:
    """A string attribute that is not a JSON object."""

    text: str


@dataclass(frozen=True)
class Absent:
    """No value was present under the attribute key."""


ABSENT = Absent()

MetadataValue = Union[Parsed, Raw, Absent]


def decode_json_value(value: Any) -> MetadataValue:
    """Decode an attribute that may hold a JSON string or an already-parsed mapping."""
    if value is None:
        return ABSENT
    if isinstance(value, Mapping):
        return Parsed(value)
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
        try:
            decoded = json.loads(text)
        except ValueError:
            return Raw(text)
        if isinstance(decoded, Mapping):
            return Parsed(decoded)
        return Raw(text)
    return ABSENT


def parse_maybe_json(value: Any) -> Optional[Any]:
    """Return the decoded JSON value of a string, the value itself for containers, else None."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    if isinstance(value, (Mapping, list, tuple)):
        return value
    return None


def _traverse(root: Mapping[str, Any], path: Sequence[str]) -> Optional[Any]:
    current: Any = root
    for part in path:
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def get_attr(attrs: Optional[Mapping[str, Any]], keys: Iterable[str]) -> Optional[Any]:
    """
    Return the first value found for ``keys``, trying each key in order.

    For every key a direct match wins. Otherwise, if the key is dotted, the
    longest prefix present in ``attrs`` is taken as the root, decoded once
    (JSON string or mapping) and the rest of the key is walked through the
    nested mappings.

    Returns:
        The resolved value, or None when no candidate resolves.
    """
    if not attrs:
        return None
    for key in keys:
        if key in attrs and attrs[key] is not None:
            return attrs[key]
        if "." not in key:
            continue
        parts = key.split(".")
        for split_at in range(len(parts) - 1, 0, -1):
            root = ".".join(parts[:split_at])
            if root not in attrs:
                continue
            decoded = decode_json_value(attrs[root])
            if not isinstance(decoded, Parsed):
                continue
            found = _traverse(decoded.value, parts[split_at:])
            if found is not None:
                return found
    return None


def get_str_attr(attrs: Optional[Mapping[str, Any]], keys: Iterable[str]) -> Optional[str]:
    """Like get_attr, but skips values that are not non-blank strings."""
    for key in keys:
        value = get_attr(attrs, [key])
        if isinstance(value, str) and value.strip():
            return value
    return None


def to_finite_number(value: Any) -> Optional[Union[int, float]]:
    """Coerce ints, floats and numeric strings; bools, NaN and infinities are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def to_token_count(value: Any, default: int = 0) -> int:
    """Coerce a token count to a non-negative int, falling back to ``default``."""
    number = to_finite_number(value)
    if number is None:
        return default
    return max(0, int(number))


def pick_number(record: Any, keys: Iterable[str]) -> Optional[Union[int, float]]:
    """Return the first finite number stored under one of ``keys`` in a mapping."""
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        if key not in record:
            continue
        number = to_finite_number(record[key])
        if number is not None:
            return number
    return None


def pick_mapping(record: Any, keys: Iterable[str]) -> Optional[Mapping[str, Any]]:
    """Return the first nested mapping stored under one of ``keys``."""
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        candidate = record.get(key)
        if isinstance(candidate, Mapping):
            return candidate
    return None
