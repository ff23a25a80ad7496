"""Span exporter and sinks for delivering usage logs."""

from spancost.exporter.sinks import CallbackSink, ConsoleSink, LoggingSink, TokenLogSink
from spancost.exporter.token_exporter import (
    OutcomeStatus,
    SpanOutcome,
    TokenCostExporter,
    resolve_model,
    span_to_log,
)

__all__ = [
    "CallbackSink",
    "ConsoleSink",
    "LoggingSink",
    "TokenLogSink",
    "OutcomeStatus",
    "SpanOutcome",
    "TokenCostExporter",
    "resolve_model",
    "span_to_log",
]
