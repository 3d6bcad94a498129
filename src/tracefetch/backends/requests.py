"""requests backend: blocking calls on the event loop's thread pool."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import requests
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


def _charset(content_type: str | None) -> str | None:
    """Charset parameter of a Content-Type header, if one is given.

    ``requests`` assumes ISO-8859-1 for any ``text/*`` body without one;
    only an explicit charset is honoured here, like the other backends.
    """
    if not content_type:
        return None
    for param in content_type.split(";")[1:]:
        key, _, value = param.strip().partition("=")
        if key.strip().lower() == "charset" and value:
            return value.strip().strip("\"'")
    return None


class RequestsBackend:
    """GET through a ``requests.Session`` inside ``loop.run_in_executor``.

    Executor threads do not receive the caller's ``contextvars``, and the
    call is an ordinary function so nothing can be attached to it. The Trace
    Context has to be passed in as the ``context`` argument.
    """

    backend = Backend.TERTIARY
    discipline = Discipline.EXPLICIT

    def __init__(self, tracer: trace.Tracer | None = None) -> None:
        self._tracer = tracer or trace.get_tracer(__name__)

    @property
    def name(self) -> str:
        return self.backend.value

    async def fetch(self, url: str, context: Context | None = None) -> Outcome:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get, url, context)

    def _get(self, url: str, context: Context | None) -> Outcome:
        with attached(context), request_span(self._tracer, self.backend, url) as span:
            try:
                with requests.Session() as session:
                    response = session.get(url)
            except requests.RequestException as e:
                logger.debug("requests call to %s failed: %r", url, e)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))
            except Exception as e:
                # urllib3 raises LocationParseError for hosts it cannot parse
                logger.debug("requests call to %s failed", url, exc_info=True)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))

            record_response(span, response.status_code, len(response.content))
            try:
                text = decode_body(
                    response.content, _charset(response.headers.get("content-type"))
                )
            except DecodeFailed as e:
                return fail(span, e)
            return succeed(span, text)

    async def aclose(self) -> None:
        """Sessions are per request; nothing to release."""
