"""Context utilities for attributing usage to users and workspaces."""

from spancost.context.context import (
    AMBIENT_USER_ID_ATTR,
    AMBIENT_WORKSPACE_ID_ATTR,
    UsageContextSpanProcessor,
    ambient_context_from_attributes,
    get_usage_context,
    pop_usage_context,
    push_usage_context,
    usage_context,
)

__all__ = [
    "AMBIENT_USER_ID_ATTR",
    "AMBIENT_WORKSPACE_ID_ATTR",
    "UsageContextSpanProcessor",
    "ambient_context_from_attributes",
    "get_usage_context",
    "push_usage_context",
    "pop_usage_context",
    "usage_context",
]
