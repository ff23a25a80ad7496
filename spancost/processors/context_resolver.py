"""Resolve which user and workspace a billable span should be attributed to."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from spancost.models import UsageContext
from spancost.utils.attributes import get_attr

logger = logging.getLogger(__name__)

DEFAULT_USER_ID_ATTRIBUTES = (
    "ai.telemetry.metadata.userId",
    "ai.telemetry.metadata.user_id",
    "experimental_telemetry.metadata.userId",
    "experimental_telemetry.metadata.user_id",
    "ai.user.id",
    "ai.userId",
    "gen_ai.user.id",
    "app.user.id",
    "user.id",
    "userId",
)

DEFAULT_WORKSPACE_ID_ATTRIBUTES = (
    "ai.telemetry.metadata.workspaceId",
    "ai.telemetry.metadata.workspace_id",
    "experimental_telemetry.metadata.workspaceId",
    "experimental_telemetry.metadata.workspace_id",
    "ai.workspace.id",
    "ai.space.id",
    "app.workspace.id",
    "workspace.id",
    "space.id",
)

# Called with (span, attributes); returns a mapping with userId/workspaceId
# (camelCase or snake_case), an object with user_id/workspace_id, or None.
ContextCallback = Callable[[Any, Mapping[str, Any]], Any]


def _as_identifier(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _field(result: Any, camel: str, snake: str) -> Optional[str]:
    if isinstance(result, Mapping):
        value = result.get(camel)
        if value is None:
            value = result.get(snake)
        return _as_identifier(value)
    return _as_identifier(getattr(result, snake, None))


def _from_callback(
    get_context: Optional[ContextCallback], span: Any, attrs: Mapping[str, Any]
) -> UsageContext:
    if get_context is None:
        return UsageContext()
    try:
        result = get_context(span, attrs)
    except Exception:
        logger.warning("Context callback failed; ignoring its result", exc_info=True)
        return UsageContext()
    if result is None:
        return UsageContext()
    return UsageContext(
        user_id=_field(result, "userId", "user_id"),
        workspace_id=_field(result, "workspaceId", "workspace_id"),
    )


def resolve_context(
    span: Any,
    attrs: Mapping[str, Any],
    *,
    user_id_attributes: Optional[Sequence[str]] = None,
    workspace_id_attributes: Optional[Sequence[str]] = None,
    get_context: Optional[ContextCallback] = None,
    ambient: Optional[UsageContext] = None,
) -> UsageContext:
    """
    Resolve user and workspace ids for a span.

    Each field is resolved independently, first hit wins:

    1. per-call span attributes (``user_id_attributes`` / ``workspace_id_attributes``)
    2. the ``get_context`` callback
    3. the ambient context captured when the span started

    Returns:
        UsageContext with None for fields no source provides.
    """
    user_keys = DEFAULT_USER_ID_ATTRIBUTES if user_id_attributes is None else user_id_attributes
    workspace_keys = (
        DEFAULT_WORKSPACE_ID_ATTRIBUTES if workspace_id_attributes is None else workspace_id_attributes
    )

    user_id = None
    for key in user_keys:
        user_id = _as_identifier(get_attr(attrs, [key]))
        if user_id:
            break
    workspace_id = None
    for key in workspace_keys:
        workspace_id = _as_identifier(get_attr(attrs, [key]))
        if workspace_id:
            break

    if user_id is None or workspace_id is None:
        resolved = _from_callback(get_context, span, attrs)
        user_id = user_id or resolved.user_id
        workspace_id = workspace_id or resolved.workspace_id

    if ambient is not None:
        user_id = user_id or ambient.user_id
        workspace_id = workspace_id or ambient.workspace_id

    return UsageContext(user_id=user_id, workspace_id=workspace_id)
