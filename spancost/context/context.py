"""Scoped user/workspace context - using OpenTelemetry's context API directly.

A request handler opens ``usage_context(user_id=..., workspace_id=...)`` once;
every span started inside it inherits those values. Because spans are
exported later, on another thread, ``UsageContextSpanProcessor`` captures the
active values onto each span when it starts, and the exporter reads them back
from the span's attributes.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import Token
from typing import Any, Iterator, Mapping, Optional

from opentelemetry import context as context_api
from opentelemetry.context import Context
from opentelemetry.sdk.trace import SpanProcessor as OTelSpanProcessor

from spancost.models import UsageContext

_USER_ID_KEY = context_api.create_key("spancost.user_id")
_WORKSPACE_ID_KEY = context_api.create_key("spancost.workspace_id")

AMBIENT_USER_ID_ATTR = "spancost.context.user_id"
AMBIENT_WORKSPACE_ID_ATTR = "spancost.context.workspace_id"


def get_usage_context(context: Optional[Context] = None) -> UsageContext:
    """Return the user/workspace values active in ``context`` (default: current context)."""
    return UsageContext(
        user_id=context_api.get_value(_USER_ID_KEY, context),
        workspace_id=context_api.get_value(_WORKSPACE_ID_KEY, context),
    )


def push_usage_context(
    user_id: Optional[str] = None,
    workspace_id: Optional[str] = None,
) -> Token:
    """
    Attach a context carrying user/workspace values and make it current.

    Fields left as None keep the value of the enclosing scope.

    Returns:
        Token needed to restore the previous state
    """
    ctx = context_api.get_current()
    if user_id is not None:
        ctx = context_api.set_value(_USER_ID_KEY, user_id, ctx)
    if workspace_id is not None:
        ctx = context_api.set_value(_WORKSPACE_ID_KEY, workspace_id, ctx)
    return context_api.attach(ctx)


def pop_usage_context(token: Token) -> None:
    """
    Restore the previous context using the provided token.

    Args:
        token: Token returned by push_usage_context()
    """
    context_api.detach(token)


@contextmanager
def usage_context(
    user_id: Optional[str] = None,
    workspace_id: Optional[str] = None,
) -> Iterator[UsageContext]:
    """Scope user/workspace identity to every span started inside the block."""
    token = push_usage_context(user_id=user_id, workspace_id=workspace_id)
    try:
        yield get_usage_context()
    finally:
        pop_usage_context(token)


def ambient_context_from_attributes(attrs: Optional[Mapping[str, Any]]) -> UsageContext:
    """Read back the values UsageContextSpanProcessor stamped on a span."""
    attrs = attrs or {}
    user_id = attrs.get(AMBIENT_USER_ID_ATTR)
    workspace_id = attrs.get(AMBIENT_WORKSPACE_ID_ATTR)
    return UsageContext(
        user_id=str(user_id) if user_id else None,
        workspace_id=str(workspace_id) if workspace_id else None,
    )


class UsageContextSpanProcessor(OTelSpanProcessor):
    """Copies the active usage context onto spans as they start."""

    def on_start(self, span, parent_context: Optional[Context] = None) -> None:
        ambient = get_usage_context(parent_context)
        if ambient.user_id:
            span.set_attribute(AMBIENT_USER_ID_ATTR, str(ambient.user_id))
        if ambient.workspace_id:
            span.set_attribute(AMBIENT_WORKSPACE_ID_ATTR, str(ambient.workspace_id))

    def on_end(self, span) -> None:
        return None

    def shutdown(self) -> None:
        return None

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
