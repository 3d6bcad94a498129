"""Span orchestration: one root span per run, one request span under it.

``run`` is the only place that knows about propagation disciplines. Adapters
just open their span under whatever context is current for them; the
orchestrator makes sure that is the root span's context.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from tracefetch.backends import SpawningBackendAdapter, select
from tracefetch.backends._base import ATTR_BACKEND, ATTR_URL
from tracefetch.propagation import (
    Discipline,
    capture,
    log_context_probe,
    with_context,
)

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.trace import Span

    from tracefetch.backends import BackendAdapter
    from tracefetch.config import RunConfig
    from tracefetch.outcome import Outcome
    from tracefetch.sdk.lifecycle import ExporterHandle

logger = logging.getLogger(__name__)

FINISHED_EVENT = "request.finished"


async def dispatch(adapter: BackendAdapter, url: str, ctx: Context) -> Outcome:
    """Call ``adapter.fetch`` so that its span becomes a child of ``ctx``."""
    if adapter.discipline is Discipline.INHERITED:
        return await adapter.fetch(url)

    if adapter.discipline is Discipline.ATTACHED:
        if not isinstance(adapter, SpawningBackendAdapter):
            raise TypeError(
                f"{type(adapter).__name__} uses the attached discipline "
                "but has no spawn()"
            )
        return await adapter.spawn(with_context(adapter.fetch(url), ctx))

    return await adapter.fetch(url, context=ctx)


def _record_outcome(span: Span, outcome: Outcome) -> None:
    if outcome.ok:
        span.set_status(Status(StatusCode.OK))
        span.add_event(
            FINISHED_EVENT, {"outcome": "success", "length": len(outcome.text or "")}
        )
        return

    error = outcome.error
    span.set_status(Status(StatusCode.ERROR, error.reason))
    span.add_event(
        FINISHED_EVENT,
        {
            "outcome": "failure",
            "error.type": type(error).__name__,
            "error.message": error.reason,
        },
    )


async def run(config: RunConfig, handle: ExporterHandle) -> Outcome:
    """Fetch ``config.url`` through ``config.backend`` inside a root span.

    Request failures come back as a failed Outcome; they are never raised.

    Raises:
        UnknownBackendError: If the backend name is not recognised. Raised
            before any span is created.
    """
    tracer = handle.tracer(__name__)
    adapter = select(config.backend, tracer=handle.tracer("tracefetch.backends"))

    try:
        root = tracer.start_span(
            config.root_span_name,
            attributes={ATTR_BACKEND: adapter.name, ATTR_URL: config.url},
        )
        # Not current yet: the ambient id still belongs to the caller
        log_context_probe("pre_run", root)
        with trace.use_span(root, end_on_exit=True):
            log_context_probe("run", root)
            outcome = await dispatch(adapter, config.url, capture())
            _record_outcome(root, outcome)

            if outcome.ok:
                logger.info(
                    "Finished making request",
                    extra={"backend": adapter.name, "length": len(outcome.text or "")},
                )
            else:
                logger.error(
                    "Request failed: %s",
                    outcome.describe(),
                    extra={"backend": adapter.name},
                )
    finally:
        await adapter.aclose()

    return outcome
