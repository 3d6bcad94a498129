"""Trace exporter lifecycle.

The exporter state is held by an ExporterHandle returned from init() and
passed to whatever needs a tracer. There is no module-level provider, so
tests can create as many independent handles as they need.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from opentelemetry import trace

from tracefetch.config import ExporterConfig
from tracefetch.exceptions import ExportFailure
from tracefetch.exporters.otlp import create_otlp_provider

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

    from tracefetch.exporters.otlp import GuardedSpanExporter

logger = logging.getLogger(__name__)


class ExporterHandle:
    """Owns the TracerProvider and its exporting span processor.

    Args:
        provider: The provider spans are created from.
        exporter: The guarded exporter feeding the collector, if any.
        shutdown_timeout_millis: Bound on the flush performed by shutdown().
    """

    def __init__(
        self,
        provider: TracerProvider,
        exporter: GuardedSpanExporter | None = None,
        shutdown_timeout_millis: int = 5000,
    ) -> None:
        self._provider = provider
        self._exporter = exporter
        self._shutdown_timeout_millis = shutdown_timeout_millis
        self._shut_down = False

    @property
    def provider(self) -> TracerProvider:
        return self._provider

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    @property
    def export_failures(self) -> int:
        """Number of batches the collector did not receive."""
        return self._exporter.failures if self._exporter is not None else 0

    def tracer(self, name: str) -> trace.Tracer:
        """Return a tracer backed by this handle's provider."""
        return self._provider.get_tracer(name)

    def shutdown(self, timeout_millis: int | None = None) -> bool:
        """Flush pending spans and release the provider.

        Safe to call more than once; calls after the first do nothing.
        Export problems are logged, never raised.

        Args:
            timeout_millis: Maximum time to wait for the flush. Defaults to
                the handle's shutdown timeout.

        Returns:
            True if every buffered span was flushed before the timeout.
        """
        if self._shut_down:
            logger.debug("Exporter already shut down")
            return True

        timeout = (
            self._shutdown_timeout_millis if timeout_millis is None else timeout_millis
        )
        flushed = False
        try:
            flushed = self._provider.force_flush(timeout_millis=timeout)
            if not flushed:
                logger.warning(
                    "%s",
                    ExportFailure(f"span flush did not complete within {timeout} ms"),
                )
            self._provider.shutdown()
            logger.debug("TracerProvider shutdown complete")
        except Exception as e:
            logger.warning("Error during TracerProvider shutdown: %s", e)
        finally:
            self._shut_down = True

        return flushed


def init(
    collector_endpoint: str,
    service_name: str,
    *,
    exporter_config: ExporterConfig | None = None,
    span_processors: Iterable[SpanProcessor] = (),
    exporter: SpanExporter | None = None,
    set_global: bool = False,
) -> ExporterHandle:
    """Create the exporter pipeline. Must run before the first span is created.

    Args:
        collector_endpoint: OTLP endpoint finished spans are sent to.
        service_name: ``service.name`` resource attribute.
        exporter_config: Transport and batching options. The endpoint in it
            is replaced by ``collector_endpoint``.
        span_processors: Extra processors such as the local span logger.
        exporter: Exporter to use instead of OTLP (tests use an in-memory one).
        set_global: Also install the provider as the global tracer provider.

    Returns:
        The handle owning the pipeline.
    """
    config = exporter_config or ExporterConfig()
    config = ExporterConfig(
        endpoint=collector_endpoint,
        transport=config.transport,
        batch=config.batch,
        console=config.console,
        shutdown_timeout_millis=config.shutdown_timeout_millis,
    )

    provider, guarded = create_otlp_provider(
        service_name, config, span_processors=span_processors, exporter=exporter
    )
    if set_global:
        trace.set_tracer_provider(provider)

    logger.debug(
        "Exporter initialized for service '%s' -> %s", service_name, collector_endpoint
    )
    return ExporterHandle(
        provider, guarded, shutdown_timeout_millis=config.shutdown_timeout_millis
    )


def shutdown(handle: ExporterHandle) -> bool:
    """Flush and shut down ``handle``. See ExporterHandle.shutdown."""
    return handle.shutdown()
