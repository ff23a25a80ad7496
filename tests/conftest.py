"""Shared fixtures: real OpenTelemetry ReadableSpans and in-memory sinks."""

import json

import pytest
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.trace import SpanContext, TraceFlags

TRACE_ID = 0x0AF7651916CD43DD8448EB211C80319C
SPAN_ID = 0x00F067AA0BA902B7
# 2024-05-01T12:00:00.123Z
END_TIME_NS = 1714564800_123_000_000


def call_attributes(provider="openai", model="gpt-4o-mini", input_tokens=100, output_tokens=10, **extra):
    """Minimal attribute bag of a text generation provider call."""
    attrs = {
        "operation.name": "ai.generateText.doGenerate",
        "ai.operationId": "ai.generateText.doGenerate",
        "ai.model.id": model,
        "ai.model.provider": f"{provider}.chat",
        "gen_ai.system": f"{provider}.chat",
        "gen_ai.request.model": model,
        "gen_ai.usage.input_tokens": input_tokens,
        "gen_ai.usage.output_tokens": output_tokens,
    }
    attrs.update(extra)
    return attrs


def build_span(name="ai.generateText.doGenerate", attributes=None, end_time=END_TIME_NS, context=True):
    span_context = None
    if context:
        span_context = SpanContext(
            trace_id=TRACE_ID,
            span_id=SPAN_ID,
            is_remote=False,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
        )
    return ReadableSpan(
        name=name,
        context=span_context,
        attributes=attributes if attributes is not None else call_attributes(),
        start_time=end_time - 1_000_000 if end_time else None,
        end_time=end_time,
    )


class MemorySink:
    def __init__(self):
        self.logs = []

    def handle(self, log):
        self.logs.append(log)


@pytest.fixture
def make_span():
    return build_span


@pytest.fixture
def make_attrs():
    return call_attributes


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def prices():
    return {
        "gpt-4o": {"prompt_per_1m_usd": 2.5, "completion_per_1m_usd": 10.0, "input_cache_read_per_1m_usd": 1.25},
        "gpt-4o-mini": {"prompt_per_1m_usd": 0.15, "completion_per_1m_usd": 0.6},
        "anthropic/claude-3-5-haiku-20241022": {
            "prompt_per_1m_usd": 0.8,
            "completion_per_1m_usd": 4.0,
            "input_cache_read_per_1m_usd": 0.08,
            "input_cache_write_per_1m_usd": 1.0,
        },
    }


@pytest.fixture
def as_json():
    return json.dumps
