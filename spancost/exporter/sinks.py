"""Destinations for finished usage logs."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from spancost.models import TokenLog

SinkResult = Optional[Awaitable[Any]]


@runtime_checkable
class TokenLogSink(Protocol):
    """Receives one ``TokenLog`` per billable span.

    ``handle`` may return an awaitable for asynchronous delivery, and may
    raise; the exporter records either failure per span.
    """

    def handle(self, log: TokenLog) -> SinkResult:
        ...


class ConsoleSink:
    """Prints each log as one JSON line to stdout (or provided stream)."""

    def __init__(self, stream=None) -> None:
        self.stream = stream or sys.stdout

    def handle(self, log: TokenLog) -> None:
        print(json.dumps(log.to_dict(), default=str), file=self.stream)


class CallbackSink:
    """Hands each log to a plain function or coroutine function."""

    def __init__(self, fn: Callable[[TokenLog], Union[None, Awaitable[Any]]]) -> None:
        self.fn = fn

    def handle(self, log: TokenLog) -> SinkResult:
        return self.fn(log)


class LoggingSink:
    """Logs a usage summary per span using the standard logging module."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self.logger = logger or logging.getLogger("spancost.usage")
        self.level = level

    def handle(self, log: TokenLog) -> None:
        msg = (
            f"[usage] provider={log.provider} model={log.model} input={log.input} "
            f"output={log.output} cache_read={log.cache_read} cache_write={log.cache_write} "
            f"cost_cents={log.cost_cents} user_id={log.user_id} "
            f"workspace_id={log.workspace_id} trace_id={log.trace_id} span_id={log.span_id}"
        )
        self.logger.log(self.level, msg)
