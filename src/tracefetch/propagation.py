"""Trace context propagation disciplines.

A Trace Context is an ``opentelemetry.context.Context``. The ambient one
lives in a ``contextvars`` variable, which asyncio copies into every task it
creates but which starts out empty in threads it did not create. Each backend
adapter declares which of three disciplines it needs to see the caller's
context:

INHERITED
    Nothing to do. The child reads the ambient context when it starts,
    which works because the adapter stays on the caller's event loop.
ATTACHED
    The context is bound to the coroutine before it is scheduled
    (``with_context``). Whatever is ambient where the coroutine eventually
    runs is overridden.
EXPLICIT
    The context is passed as an ordinary argument and the adapter attaches
    it itself (``attached``) before opening its span.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TypeVar

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.context import Context

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Discipline(str, Enum):
    """How a backend adapter receives the caller's Trace Context."""

    INHERITED = "inherited"
    ATTACHED = "attached"
    EXPLICIT = "explicit"


def capture() -> Context:
    """Return the currently active Trace Context."""
    return otel_context.get_current()


async def with_context(awaitable: Awaitable[T], ctx: Context) -> T:
    """Await ``awaitable`` with ``ctx`` attached as the ambient context.

    The attachment happens when the returned coroutine starts running, on
    whichever loop or thread runs it, and is undone when it finishes.
    """
    token = otel_context.attach(ctx)
    try:
        return await awaitable
    finally:
        otel_context.detach(token)


@contextmanager
def attached(ctx: Context | None) -> Iterator[None]:
    """Make ``ctx`` the ambient context for the block. ``None`` is a no-op."""
    if ctx is None:
        yield
        return
    token = otel_context.attach(ctx)
    try:
        yield
    finally:
        otel_context.detach(token)


def current_span_id(ctx: Context | None = None) -> int | None:
    """Span id of the span active in ``ctx`` (ambient when omitted)."""
    span_context = trace.get_current_span(ctx).get_span_context()
    return span_context.span_id if span_context.is_valid else None


def _format(span_id: int | None) -> str | None:
    return trace.format_span_id(span_id) if span_id else None


def log_context_probe(label: str, span: trace.Span | None = None) -> None:
    """Log the id of ``span`` next to the id of the ambient span.

    When the two disagree, the Trace Context did not make it across the
    boundary just crossed.
    """
    span_span_id = None
    if span is not None and span.get_span_context().is_valid:
        span_span_id = span.get_span_context().span_id
    logger.warning(
        label,
        extra={
            "span_span_id": _format(span_span_id),
            "cx_span_id": _format(current_span_id()),
        },
    )
