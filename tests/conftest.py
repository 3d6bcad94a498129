"""Shared pytest configuration and fixtures.

This module provides test fixtures that:
1. Reset OpenTelemetry global state between tests for isolation
2. Capture spans with InMemorySpanExporter instead of a real collector
3. Serve canned HTTP responses from a local aiohttp stub server
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from typing import Generator

import pytest
from aiohttp import web
from opentelemetry import trace as trace_api
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from tests.fakes import RecordingLifecycle
from tracefetch.config import ExporterConfig
from tracefetch.sdk import lifecycle
from tracefetch.sdk.lifecycle import ExporterHandle


def _reset_trace_globals() -> None:
    """Reset OpenTelemetry trace globals for test isolation.

    WARNING: Only use this in tests. This accesses internal OTel APIs.
    """
    from opentelemetry.util._once import Once

    current_provider = trace_api.get_tracer_provider()
    shutdown_fn = getattr(current_provider, "shutdown", None)
    if callable(shutdown_fn):
        try:
            shutdown_fn()
        except Exception:  # nosec B110 - cleanup errors should not fail tests
            pass

    trace_api._TRACER_PROVIDER_SET_ONCE = Once()
    trace_api._TRACER_PROVIDER = None
    trace_api._PROXY_TRACER_PROVIDER = trace_api.ProxyTracerProvider()


def _reset_logging() -> None:
    """Drop handlers and levels installed by configure_logging()."""
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_tracefetch_handler", False):
            root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)
    logging.getLogger("tracefetch").setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def reset_otel_state() -> Generator[None, None, None]:
    """Reset OpenTelemetry global state before and after each test."""
    _reset_trace_globals()
    yield
    _reset_trace_globals()
    _reset_logging()


@pytest.fixture
def in_memory_exporter() -> Generator[InMemorySpanExporter, None, None]:
    """Provide an InMemorySpanExporter for capturing spans in tests."""
    exporter = InMemorySpanExporter()
    yield exporter
    exporter.clear()


@pytest.fixture
def handle(
    in_memory_exporter: InMemorySpanExporter,
) -> Generator[ExporterHandle, None, None]:
    """An ExporterHandle that exports synchronously into memory."""
    exporter_handle = lifecycle.init(
        "http://collector.invalid/v1/traces",
        "test-service",
        exporter_config=ExporterConfig(batch=False),
        exporter=in_memory_exporter,
    )
    yield exporter_handle
    exporter_handle.shutdown()


@pytest.fixture
def recording_lifecycle(
    monkeypatch: pytest.MonkeyPatch,
    in_memory_exporter: InMemorySpanExporter,
) -> RecordingLifecycle:
    """Patch the CLI's exporter init/shutdown with a counting fake."""
    recorder = RecordingLifecycle(in_memory_exporter)
    monkeypatch.setattr("tracefetch.cli.init_exporter", recorder.init)
    monkeypatch.setattr("tracefetch.cli.shutdown_exporter", recorder.shutdown)
    return recorder


# =============================================================================
# Stub HTTP server
# =============================================================================


async def _hello(request: web.Request) -> web.Response:
    return web.Response(text="hello")


async def _binary(request: web.Request) -> web.Response:
    return web.Response(
        body=b"\xff\xfe\xfd", content_type="text/plain", charset="utf-8"
    )


async def _missing(request: web.Request) -> web.Response:
    return web.Response(status=404, text="not here")


def _stub_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/ok", _hello)
    app.router.add_get("/binary", _binary)
    app.router.add_get("/missing", _missing)
    return app


@pytest.fixture(scope="session")
def stub_server() -> Generator[str, None, None]:
    """Run the stub app on its own thread and yield its base URL.

    The server has its own event loop so that both async tests and the
    blocking CLI (which calls asyncio.run) can reach it.

    Routes:
        /ok       200 "hello"
        /binary   200 with bytes that are not valid UTF-8
        /missing  404 "not here"
    """
    loop = asyncio.new_event_loop()
    runner = web.AppRunner(_stub_app())
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]

    loop.run_until_complete(runner.setup())
    loop.run_until_complete(web.SockSite(runner, sock).start())
    thread = threading.Thread(target=loop.run_forever, name="stub-server", daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{port}"

    asyncio.run_coroutine_threadsafe(runner.cleanup(), loop).result(timeout=5)
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


@pytest.fixture
def refused_url() -> str:
    """A URL on a local port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/"
