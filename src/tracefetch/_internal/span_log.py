"""SpanProcessor that mirrors span lifecycle events into the local log.

The exported trace goes to the collector; this processor only decides what
shows up on the local log stream, so the local log filter never affects
what the collector receives.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import SpanProcessor

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.sdk.trace import ReadableSpan, Span

SPAN_LOGGER_NAME = "tracefetch.spans"


def _format_id(span_id: int | None) -> str | None:
    if not span_id:
        return None
    return trace.format_span_id(span_id)


class SpanLoggingProcessor(SpanProcessor):
    """Log a ``new`` record when a span starts and ``close`` when it ends.

    Args:
        level: Level used for both records. The CLI uses INFO in JSON mode
            and DEBUG in text mode.
        logger: Logger to write to, ``tracefetch.spans`` by default.

    Example:
        >>> provider.add_span_processor(SpanLoggingProcessor(logging.INFO))
    """

    def __init__(
        self,
        level: int = logging.DEBUG,
        logger: logging.Logger | None = None,
    ) -> None:
        self._level = level
        self._logger = logger or logging.getLogger(SPAN_LOGGER_NAME)

    def on_start(
        self,
        span: "Span",
        parent_context: Optional["Context"] = None,
    ) -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        parent = span.parent
        self._logger.log(
            self._level,
            "new",
            extra={
                "span_name": span.name,
                "span_id": _format_id(span.context.span_id),
                "parent_id": _format_id(parent.span_id if parent else None),
            },
        )

    def on_end(self, span: "ReadableSpan") -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        duration_ms = None
        if span.start_time is not None and span.end_time is not None:
            duration_ms = round((span.end_time - span.start_time) / 1_000_000, 3)
        self._logger.log(
            self._level,
            "close",
            extra={
                "span_name": span.name,
                "span_id": _format_id(span.context.span_id),
                "status": span.status.status_code.name,
                "duration_ms": duration_ms,
            },
        )

    def shutdown(self) -> None:
        """Nothing is buffered."""

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
