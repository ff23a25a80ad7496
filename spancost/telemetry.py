"""Wire the token cost exporter into an OpenTelemetry tracing pipeline."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from opentelemetry import trace as trace_api
from opentelemetry.sdk.trace import SpanProcessor as OTelSpanProcessor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from spancost.config import SpanCostConfig, load_config
from spancost.context.context import UsageContextSpanProcessor
from spancost.exporter.sinks import ConsoleSink, TokenLogSink
from spancost.exporter.token_exporter import TokenCostExporter
from spancost.processors.context_resolver import ContextCallback

logger = logging.getLogger(__name__)

_active_setup: Optional["TelemetrySetup"] = None
_setup_lock = threading.Lock()


@dataclass
class TelemetrySetup:
    tracer_provider: TracerProvider
    tracer: trace_api.Tracer
    exporter: TokenCostExporter
    span_processor: OTelSpanProcessor

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.tracer_provider.force_flush(timeout_millis)

    def shutdown(self) -> None:
        self.tracer_provider.shutdown()


def init_cost_telemetry(
    sink: Optional[TokenLogSink] = None,
    *,
    exporter: Optional[TokenCostExporter] = None,
    span_processor: Optional[OTelSpanProcessor] = None,
    tracer_provider: Optional[TracerProvider] = None,
    auto_register: bool = True,
    tracer_name: str = "spancost",
    config: Optional[SpanCostConfig] = None,
    prices: Optional[Mapping[str, Any]] = None,
    get_context: Optional[ContextCallback] = None,
) -> TelemetrySetup:
    """
    Build a tracing pipeline whose ended LLM spans become usage logs.

    Args:
        sink: destination for logs (default: ConsoleSink)
        exporter: prebuilt exporter; when given, sink/config/prices/get_context are ignored
        span_processor: processor wrapping the exporter (default: BatchSpanProcessor)
        tracer_provider: existing SDK provider to attach to; a new one is created otherwise
        auto_register: install a newly created provider as the global tracer provider
        tracer_name: instrumentation scope of the returned tracer
        config: loaded configuration (default: load_config())
        prices: price catalog override
        get_context: callback resolving user/workspace for a span

    Returns:
        TelemetrySetup with the provider, a tracer, the exporter and its processor.
    """
    global _active_setup

    if auto_register:
        with _setup_lock:
            if _active_setup is not None:
                logger.warning(
                    "init_cost_telemetry() called while a pipeline is already registered; "
                    "returning the existing one. Call shutdown_cost_telemetry() first to rebuild it."
                )
                return _active_setup

    if config is None:
        config = load_config()
    if config.logging.debug:
        logging.getLogger("spancost").setLevel(logging.DEBUG)

    if exporter is None:
        exporter = TokenCostExporter.from_config(
            sink if sink is not None else ConsoleSink(),
            config,
            prices=prices,
            get_context=get_context,
        )
    if span_processor is None:
        span_processor = BatchSpanProcessor(exporter)

    created = tracer_provider is None
    if created:
        tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(UsageContextSpanProcessor())
    tracer_provider.add_span_processor(span_processor)

    setup = TelemetrySetup(
        tracer_provider=tracer_provider,
        tracer=tracer_provider.get_tracer(tracer_name),
        exporter=exporter,
        span_processor=span_processor,
    )

    if auto_register and created:
        trace_api.set_tracer_provider(tracer_provider)
        with _setup_lock:
            _active_setup = setup
    return setup


def get_active_setup() -> Optional[TelemetrySetup]:
    return _active_setup


def shutdown_cost_telemetry() -> None:
    """Flush and shut down the globally registered pipeline, if any."""
    global _active_setup
    with _setup_lock:
        setup, _active_setup = _active_setup, None
    if setup is None:
        return
    setup.force_flush()
    setup.shutdown()
