"""OTLP exporter implementation.

This module builds the TracerProvider that ships finished spans to the
collector over OTLP.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HTTPSpanExporter,
)
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
    SpanExportResult,
)

from tracefetch.exceptions import ExportFailure

# gRPC exporter is optional - only available with opentelemetry-exporter-otlp-proto-grpc
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GRPCSpanExporter,
    )

    GRPC_AVAILABLE = True
except ImportError:
    GRPCSpanExporter = None  # type: ignore[misc, assignment]
    GRPC_AVAILABLE = False

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor

    from tracefetch.config import ExporterConfig

logger = logging.getLogger(__name__)


class GuardedSpanExporter(SpanExporter):
    """SpanExporter wrapper that turns export errors into logged failures.

    The wrapped exporter may raise or report FAILURE when the collector is
    unreachable. Either way the failure is logged as an ExportFailure and
    counted; nothing is raised into the span processor.

    Args:
        delegate: The SpanExporter doing the actual transmission.
    """

    def __init__(self, delegate: SpanExporter) -> None:
        self._delegate = delegate
        self._shut_down = False
        self.failures = 0

    def export(self, spans: Sequence["ReadableSpan"]) -> SpanExportResult:
        if self._shut_down:
            logger.debug("Exporter shut down, dropping %d span(s)", len(spans))
            return SpanExportResult.FAILURE

        try:
            result = self._delegate.export(spans)
        except Exception as e:
            self._record_failure(
                ExportFailure(f"{type(e).__name__}: {e}"), len(spans)
            )
            return SpanExportResult.FAILURE

        if result is not SpanExportResult.SUCCESS:
            self._record_failure(
                ExportFailure("collector did not accept the batch"), len(spans)
            )
        return result

    def _record_failure(self, failure: ExportFailure, count: int) -> None:
        self.failures += 1
        logger.warning("Failed to export %d span(s): %s", count, failure)

    def shutdown(self) -> None:
        self._shut_down = True
        try:
            self._delegate.shutdown()
        except Exception as e:
            logger.warning("Error during span exporter shutdown: %s", e)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._delegate.force_flush(timeout_millis)


def create_span_exporter(config: ExporterConfig) -> SpanExporter:
    """Create the OTLP span exporter for the configured transport."""
    timeout = config.shutdown_timeout_millis / 1000

    if config.transport == "grpc":
        if GRPC_AVAILABLE:
            return GRPCSpanExporter(  # type: ignore[misc]
                endpoint=config.endpoint,
                timeout=timeout,
            )
        logger.warning(
            "gRPC transport requested but opentelemetry-exporter-otlp-proto-grpc "
            "is not installed. Falling back to HTTP transport. "
            "Install with: pip install tracefetch[grpc]"
        )

    return HTTPSpanExporter(endpoint=config.endpoint, timeout=timeout)


def create_otlp_provider(
    service_name: str,
    config: ExporterConfig,
    span_processors: Iterable["SpanProcessor"] = (),
    exporter: SpanExporter | None = None,
) -> tuple[TracerProvider, GuardedSpanExporter]:
    """Create a TracerProvider that exports to the collector.

    Args:
        service_name: Value of the ``service.name`` resource attribute.
        config: Exporter configuration (endpoint, transport, batching).
        span_processors: Extra processors added before the exporting one.
        exporter: Use this exporter instead of building an OTLP one.

    Returns:
        The provider and the guarded exporter feeding the collector.
    """
    resource = Resource.create({SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    for processor in span_processors:
        provider.add_span_processor(processor)

    guarded = GuardedSpanExporter(exporter or create_span_exporter(config))

    # Choose span processor based on configuration
    export_processor: Any
    if config.batch:
        export_processor = BatchSpanProcessor(guarded)
    else:
        export_processor = SimpleSpanProcessor(guarded)
    provider.add_span_processor(export_processor)

    if config.console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    logger.debug(
        "TracerProvider configured with endpoint: %s (transport=%s, batch=%s)",
        config.endpoint,
        config.transport,
        config.batch,
    )

    return provider, guarded
