"""Backend identifiers, the adapter Protocol, and helpers shared by adapters."""

from __future__ import annotations

from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

from opentelemetry.trace import Status, StatusCode

from tracefetch.exceptions import DecodeFailed, RequestError, UnknownBackendError
from tracefetch.outcome import Outcome
from tracefetch.propagation import Discipline, log_context_probe

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.trace import Span, Tracer

T = TypeVar("T")

ATTR_BACKEND = "tracefetch.backend"
ATTR_METHOD = "http.request.method"
ATTR_URL = "url.full"
ATTR_STATUS_CODE = "http.response.status_code"
ATTR_BODY_SIZE = "http.response.body.size"

DEFAULT_CHARSET = "utf-8"


class Backend(str, Enum):
    """Closed set of request backends. Values are the client library names."""

    PRIMARY = "httpx"
    SECONDARY = "aiohttp"
    TERTIARY = "requests"

    @classmethod
    def parse(cls, name: str) -> Backend:
        """Match ``name`` case-insensitively, ignoring surrounding whitespace.

        Only the spellings listed in ``_ALIASES`` are accepted.

        Raises:
            UnknownBackendError: If ``name`` matches no backend.
        """
        try:
            return _ALIASES[name.strip().lower()]
        except KeyError:
            raise UnknownBackendError(name, [b.value for b in cls]) from None


def _spellings(library: str, role: str, historic: str) -> tuple[str, ...]:
    return (
        library,
        role,
        f"{role}client",
        f"{role}_client",
        f"{role}-client",
        historic,
        f"{historic}like",
        f"{historic}_like",
        f"{historic}-like",
    )


# Library name, role name (optionally "client"-suffixed) and the historic
# client name (reqwest, isahc, surf) with its "like" forms.
_ALIASES: dict[str, Backend] = {
    alias: backend
    for backend, aliases in {
        Backend.PRIMARY: _spellings("httpx", "primary", "reqwest"),
        Backend.SECONDARY: _spellings("aiohttp", "secondary", "isahc"),
        Backend.TERTIARY: _spellings("requests", "tertiary", "surf"),
    }.items()
    for alias in aliases
}


@runtime_checkable
class BackendAdapter(Protocol):
    """Capability every backend adapter implements."""

    backend: Backend
    discipline: Discipline

    @property
    def name(self) -> str:
        """Span name of the request span (the library name)."""
        ...

    async def fetch(self, url: str, context: Context | None = None) -> Outcome:
        """GET ``url`` and return its body text or the failure."""
        ...

    async def aclose(self) -> None:
        """Release resources held by the adapter."""
        ...


@runtime_checkable
class SpawningBackendAdapter(BackendAdapter, Protocol):
    """Adapter whose requests run on a worker of its own.

    Required for the ATTACHED discipline: the orchestrator binds the Trace
    Context to the coroutine and hands it to ``spawn``.
    """

    async def spawn(self, operation: Awaitable[T]) -> T:
        ...


def decode_body(content: bytes, charset: str | None) -> str:
    """Decode ``content`` strictly with ``charset`` (UTF-8 when unknown).

    Raises:
        DecodeFailed: If the bytes are not valid in that encoding.
    """
    encoding = charset or DEFAULT_CHARSET
    try:
        return content.decode(encoding)
    except (UnicodeDecodeError, LookupError) as e:
        raise DecodeFailed(f"response body is not valid {encoding}: {e}") from e


@contextmanager
def request_span(tracer: Tracer, backend: Backend, url: str) -> Iterator[Span]:
    """Open the request span as a child of the ambient context.

    Exceptions are not recorded here; adapters report failures as Outcomes
    through ``fail``.
    """
    with tracer.start_as_current_span(
        backend.value,
        attributes={ATTR_BACKEND: backend.value, ATTR_METHOD: "GET", ATTR_URL: url},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        log_context_probe("make_request", span)
        yield span


def record_response(span: Span, status_code: int, body_size: int) -> None:
    span.set_attribute(ATTR_STATUS_CODE, status_code)
    span.set_attribute(ATTR_BODY_SIZE, body_size)


def succeed(span: Span, text: str) -> Outcome:
    span.set_status(Status(StatusCode.OK))
    return Outcome.success(text)


def fail(span: Span, error: RequestError) -> Outcome:
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, error.reason))
    return Outcome.failure(error)
