"""Span exporter that turns billable LLM call spans into cost-annotated usage logs."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from spancost.context.context import ambient_context_from_attributes
from spancost.models import PriceEntry, TokenLog
from spancost.pricing_config import build_price_map, load_prices
from spancost.processors.classifier import classify_span
from spancost.processors.context_resolver import ContextCallback, resolve_context
from spancost.processors.cost_engine import compute_cost_cents, lookup_price
from spancost.processors.usage_normalizer import (
    extract_sdk_usage,
    normalize_provider_tokens,
)
from spancost.utils.attributes import get_attr, get_str_attr
from spancost.utils.helpers import ns_to_iso, span_ids

if TYPE_CHECKING:
    from spancost.config import SpanCostConfig
    from spancost.exporter.sinks import TokenLogSink

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown"

MODEL_OVERRIDE_KEYS = (
    "ai.telemetry.metadata.modelName",
    "ai.telemetry.metadata.model_name",
    "experimental_telemetry.metadata.modelName",
    "experimental_telemetry.metadata.model_name",
)
RESPONSE_MODEL_KEYS = ("ai.response.model", "gen_ai.response.model")
BASE_MODEL_KEYS = ("ai.model.id",)
REQUEST_MODEL_KEYS = ("gen_ai.request.model",)
MODEL_KEY_CHAIN = (
    MODEL_OVERRIDE_KEYS,
    RESPONSE_MODEL_KEYS,
    BASE_MODEL_KEYS,
    REQUEST_MODEL_KEYS,
)

FINISH_REASON_KEYS = ("ai.response.finishReason", "gen_ai.response.finish_reasons")


class OutcomeStatus(Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SpanOutcome:
    """Result of processing one span: a log, a skip, or a failure reason."""

    status: OutcomeStatus
    log: Optional[TokenLog] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, log: TokenLog) -> "SpanOutcome":
        return cls(OutcomeStatus.OK, log=log)

    @classmethod
    def skipped(cls, reason: str) -> "SpanOutcome":
        return cls(OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "SpanOutcome":
        return cls(OutcomeStatus.FAILED, reason=reason)


def apply_model_mapping(model: str, model_mapping: Optional[Mapping[str, str]]) -> str:
    """Translate a gateway/deployment model name to its catalog id (exact match first)."""
    if not model_mapping:
        return model
    mapped = model_mapping.get(model)
    if mapped:
        return mapped
    lowered = model.lower()
    for source, target in model_mapping.items():
        if source.lower() == lowered and target:
            return target
    return model


def resolve_model(
    attrs: Mapping[str, Any], model_mapping: Optional[Mapping[str, str]] = None
) -> str:
    """
    Pick the model id used for pricing and reporting.

    Priority: per-call override > response-reported model > base model id >
    requested model. The mapping table is applied to whichever wins.
    """
    for keys in MODEL_KEY_CHAIN:
        candidate = get_str_attr(attrs, keys)
        if candidate:
            return apply_model_mapping(candidate.strip(), model_mapping)
    return UNKNOWN_MODEL


def resolve_finish_reason(attrs: Mapping[str, Any]) -> Optional[str]:
    value = get_attr(attrs, FINISH_REASON_KEYS)
    if isinstance(value, (list, tuple)):
        if not value or value[0] is None:
            return None
        return str(value[0])
    if value is None:
        return None
    return str(value)


def span_to_log(
    span: ReadableSpan,
    *,
    prices: Mapping[str, PriceEntry],
    model_mapping: Optional[Mapping[str, str]] = None,
    user_id_attributes: Optional[Sequence[str]] = None,
    workspace_id_attributes: Optional[Sequence[str]] = None,
    get_context: Optional[ContextCallback] = None,
    include_attributes: bool = False,
) -> Optional[TokenLog]:
    """
    Build the usage log for a span, or return None if it is not billable.

    Pure assembly step: nothing is delivered. Unexpected errors propagate to
    the caller.
    """
    view = classify_span(span)
    if view is None:
        return None
    attrs = view.attributes

    provider = view.provider
    model = resolve_model(attrs, model_mapping)

    usage = normalize_provider_tokens(provider, attrs, extract_sdk_usage(attrs))
    price = lookup_price(provider, model, prices)
    cost_cents = compute_cost_cents(usage, price)

    context = resolve_context(
        span,
        attrs,
        user_id_attributes=user_id_attributes,
        workspace_id_attributes=workspace_id_attributes,
        get_context=get_context,
        ambient=ambient_context_from_attributes(attrs),
    )
    trace_id, span_id = span_ids(span)

    return TokenLog(
        time=ns_to_iso(getattr(span, "end_time", None)),
        provider=provider,
        model=model,
        input=usage.input,
        output=usage.output,
        cache_read=usage.cache_read,
        cache_write=usage.cache_write,
        cost_cents=cost_cents,
        finish_reason=resolve_finish_reason(attrs),
        user_id=context.user_id,
        workspace_id=context.workspace_id,
        trace_id=trace_id,
        span_id=span_id,
        attributes=dict(attrs) if include_attributes else None,
    )


class TokenCostExporter(SpanExporter):
    """
    Exports billable LLM spans as ``TokenLog`` records to a sink.

    Tracing must never break because of cost accounting: every per-span
    error becomes a FAILED outcome and ``export`` always reports success.
    """

    def __init__(
        self,
        sink: "TokenLogSink",
        *,
        prices: Optional[Mapping[str, Any]] = None,
        model_mapping: Optional[Mapping[str, str]] = None,
        user_id_attributes: Optional[Sequence[str]] = None,
        workspace_id_attributes: Optional[Sequence[str]] = None,
        get_context: Optional[ContextCallback] = None,
        include_attributes: bool = False,
    ) -> None:
        self.sink = sink
        self.prices: Dict[str, PriceEntry] = (
            build_price_map(prices) if prices is not None else load_prices()
        )
        self.model_mapping = dict(model_mapping or {})
        self.user_id_attributes = (
            tuple(user_id_attributes) if user_id_attributes is not None else None
        )
        self.workspace_id_attributes = (
            tuple(workspace_id_attributes) if workspace_id_attributes is not None else None
        )
        self.get_context = get_context
        self.include_attributes = include_attributes

        self._lock = threading.Lock()
        self._loop_lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # asyncio keeps only weak references to tasks
        self._pending_tasks: Set["asyncio.Task[List[Any]]"] = set()
        self._stats = {
            "batches": 0,
            "ok": 0,
            "skipped": 0,
            "failed": 0,
        }

    @classmethod
    def from_config(
        cls,
        sink: "TokenLogSink",
        config: "SpanCostConfig",
        *,
        prices: Optional[Mapping[str, Any]] = None,
        get_context: Optional[ContextCallback] = None,
    ) -> "TokenCostExporter":
        """Build an exporter from a loaded ``SpanCostConfig``."""
        if prices is None:
            prices = load_prices(pricing_file=config.pricing.file)
        options = config.exporter
        return cls(
            sink,
            prices=prices,
            model_mapping=options.model_mapping,
            user_id_attributes=options.user_id_attributes,
            workspace_id_attributes=options.workspace_id_attributes,
            get_context=get_context,
            include_attributes=options.include_attributes,
        )

    def update_prices(self, prices: Mapping[str, Any]) -> None:
        """Swap the price catalog used for spans exported from now on."""
        self.prices = build_price_map(prices)

    def process_span(self, span: ReadableSpan) -> SpanOutcome:
        """Classify, normalize and price one span. Never raises."""
        try:
            log = span_to_log(
                span,
                prices=self.prices,
                model_mapping=self.model_mapping,
                user_id_attributes=self.user_id_attributes,
                workspace_id_attributes=self.workspace_id_attributes,
                get_context=self.get_context,
                include_attributes=self.include_attributes,
            )
        except Exception as exc:
            logger.debug("Failed to build usage log for span %r", getattr(span, "name", None), exc_info=True)
            return SpanOutcome.failed(f"{type(exc).__name__}: {exc}")
        if log is None:
            logger.debug("Skipping non-billable span %r", getattr(span, "name", None))
            return SpanOutcome.skipped("not a billable provider call")
        return SpanOutcome.ok(log)

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        outcomes: List[SpanOutcome] = []
        pending: List[Tuple[TokenLog, Awaitable[Any]]] = []

        for span in spans:
            outcome = self.process_span(span)
            if outcome.status is OutcomeStatus.OK:
                try:
                    result = self.sink.handle(outcome.log)
                except Exception as exc:
                    logger.debug("Token log sink failed", exc_info=True)
                    outcome = SpanOutcome.failed(f"sink: {type(exc).__name__}: {exc}")
                else:
                    if inspect.isawaitable(result):
                        pending.append((outcome.log, result))
                        continue
            outcomes.append(outcome)

        self._record(outcomes, batches=1)
        if pending:
            self._deliver_pending(pending)
        return SpanExportResult.SUCCESS

    def _deliver_pending(self, pending: List[Tuple[TokenLog, Awaitable[Any]]]) -> None:
        """Await async sink deliveries concurrently; record their outcomes."""
        logs = [log for log, _ in pending]

        async def _gather() -> List[Any]:
            return await asyncio.gather(*(awaitable for _, awaitable in pending), return_exceptions=True)

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            task = running.create_task(_gather())
            with self._lock:
                self._pending_tasks.add(task)
            task.add_done_callback(lambda t: self._on_delivered(logs, t))
            return

        with self._loop_lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = asyncio.new_event_loop()
            results = self._loop.run_until_complete(_gather())
        self._record_deliveries(logs, results)

    def _on_delivered(self, logs: List[TokenLog], task: "asyncio.Task[List[Any]]") -> None:
        with self._lock:
            self._pending_tasks.discard(task)
        if task.cancelled():
            self._record([SpanOutcome.failed("sink: delivery cancelled")] * len(logs))
            return
        error = task.exception()
        if error is not None:
            logger.debug("Async token log delivery failed", exc_info=error)
            self._record([SpanOutcome.failed(f"sink: {error}")] * len(logs))
            return
        self._record_deliveries(logs, task.result())

    def _record_deliveries(self, logs: List[TokenLog], results: List[Any]) -> None:
        outcomes = []
        for log, result in zip(logs, results):
            if isinstance(result, BaseException):
                logger.debug("Token log sink failed", exc_info=result)
                outcomes.append(SpanOutcome.failed(f"sink: {type(result).__name__}: {result}"))
            else:
                outcomes.append(SpanOutcome.ok(log))
        self._record(outcomes)

    def _record(self, outcomes: Sequence[SpanOutcome], batches: int = 0) -> None:
        with self._lock:
            self._stats["batches"] += batches
            for outcome in outcomes:
                self._stats[outcome.status.value] += 1

    def get_stats(self) -> Dict[str, int]:
        """Get export statistics."""
        with self._lock:
            return dict(self._stats)

    def reset_stats(self) -> None:
        with self._lock:
            for key in self._stats:
                self._stats[key] = 0

    def shutdown(self) -> None:
        with self._loop_lock:
            if self._loop is not None and not self._loop.is_closed():
                self._loop.close()
            self._loop = None

    def pending_deliveries(self) -> int:
        """Number of async deliveries still running on a caller's event loop."""
        with self._lock:
            return len(self._pending_tasks)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """
        Report whether every delivery has completed.

        Deliveries on the exporter's own loop finish inside ``export``. Tasks
        scheduled on a caller's running loop cannot be awaited from here, so
        this returns False while any of them is still pending.
        """
        return self.pending_deliveries() == 0

    def __repr__(self) -> str:
        return f"TokenCostExporter(sink={self.sink!r}, prices={len(self.prices)})"

