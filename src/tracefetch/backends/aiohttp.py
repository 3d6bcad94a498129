"""aiohttp backend: requests run on a private event loop in a worker thread."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, TypeVar

import aiohttp
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

T = TypeVar("T")


async def _await(operation: Awaitable[T]) -> T:
    return await operation


class AiohttpBackend:
    """GET through ``aiohttp.ClientSession`` on a dedicated worker.

    ``spawn`` runs each operation with ``asyncio.run`` on a single worker
    thread. That thread never inherits the caller's ``contextvars``, so the
    request only joins the caller's trace when the orchestrator attached the
    Trace Context to the operation before spawning it.
    """

    backend = Backend.SECONDARY
    discipline = Discipline.ATTACHED

    def __init__(self, tracer: trace.Tracer | None = None) -> None:
        self._tracer = tracer or trace.get_tracer(__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="tracefetch-aiohttp"
        )

    @property
    def name(self) -> str:
        return self.backend.value

    async def spawn(self, operation: Awaitable[T]) -> T:
        """Run ``operation`` to completion on the worker's own event loop."""
        coro: Coroutine[Any, Any, T] = (
            operation if asyncio.iscoroutine(operation) else _await(operation)
        )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, asyncio.run, coro)

    async def fetch(self, url: str, context: Context | None = None) -> Outcome:
        with attached(context), request_span(self._tracer, self.backend, url) as span:
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(url) as response:
                        content = await response.read()
                        status = response.status
                        charset = response.charset
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug("aiohttp request to %s failed: %r", url, e)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))
            except Exception as e:
                # Malformed hosts and ports fail below aiohttp (idna, socket)
                logger.debug("aiohttp request to %s failed", url, exc_info=True)
                return fail(span, RequestFailed(f"{type(e).__name__}: {e}"))

            record_response(span, status, len(content))
            try:
                text = decode_body(content, charset)
            except DecodeFailed as e:
                return fail(span, e)
            return succeed(span, text)

    async def aclose(self) -> None:
        """Wait for the worker to finish without blocking the event loop."""
        await asyncio.get_running_loop().run_in_executor(None, self._executor.shutdown)
