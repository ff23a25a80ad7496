"""spancost: cost-annotated token usage logs from LLM tracing spans."""

from spancost.context import pop_usage_context, push_usage_context, usage_context
from spancost.errors import ConfigError, PricingError, SpanCostError, ValidationError
from spancost.exporter import (
    CallbackSink,
    ConsoleSink,
    LoggingSink,
    OutcomeStatus,
    SpanOutcome,
    TokenCostExporter,
    TokenLogSink,
    span_to_log,
)
from spancost.metadata import CostMetadata, is_known_model, known_models, validate_metadata
from spancost.models import CanonicalUsage, PriceEntry, TokenLog, UsageContext
from spancost.pricing_config import load_prices, load_prices_with_source
from spancost.telemetry import (
    TelemetrySetup,
    get_active_setup,
    init_cost_telemetry,
    shutdown_cost_telemetry,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "init_cost_telemetry",
    "shutdown_cost_telemetry",
    "get_active_setup",
    "TelemetrySetup",
    "TokenCostExporter",
    "span_to_log",
    "SpanOutcome",
    "OutcomeStatus",
    "TokenLogSink",
    "ConsoleSink",
    "CallbackSink",
    "LoggingSink",
    "usage_context",
    "push_usage_context",
    "pop_usage_context",
    "CanonicalUsage",
    "PriceEntry",
    "TokenLog",
    "UsageContext",
    "load_prices",
    "load_prices_with_source",
    "CostMetadata",
    "validate_metadata",
    "is_known_model",
    "known_models",
    "SpanCostError",
    "ConfigError",
    "PricingError",
    "ValidationError",
]
