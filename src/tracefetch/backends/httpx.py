"""httpx backend: runs on the caller's event loop and inherits its context."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx
from opentelemetry import trace

from tracefetch.backends._base import (
    Backend,
    decode_body,
    fail,
    record_response,
    request_span,
    succeed,
)
from tracefetch.exceptions import DecodeFailed, RequestFailed
from tracefetch.propagation import Discipline, attached

if TYPE_CHECKING:
    from opentelemetry.context import Context

    from tracefetch.outcome import Outcome

logger = logging.getLogger(__name__)


class HttpxBackend:
    """GET through ``httpx.AsyncClient``.

    The request is awaited directly by the orchestrator, so the ambient
    context set by the root span is still current when the request span
    opens.
    """

    backend = Backend.PRIMARY
    discipline = Discipline.INHERITED

    def __init__(self, tracer: trace.Tracer | None = None) -> None:
        self._tracer = tracer or trace.get_tracer(__name__)

    @property
    def name(self) -> str:
        return self.backend.value

    async def fetch(self, url: str, context: Context | None = None) -> Outcome:
        with attached(context), request_span(self._tracer, self.backend, url) as span:
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.debug("httpx request to %s failed: %r", url, e)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))
            except Exception as e:
                # Malformed hosts and ports fail below httpx (idna, socket)
                logger.debug("httpx request to %s failed", url, exc_info=True)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))

            record_response(span, response.status_code, len(response.content))
            try:
                text = decode_body(response.content, response.charset_encoding)
            except DecodeFailed as e:
                return fail(span, e)
            return succeed(span, text)

    async def aclose(self) -> None:
        """Clients are per request; nothing to release."""
