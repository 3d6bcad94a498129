"""Span exporters."""

from tracefetch.exporters.otlp import GuardedSpanExporter, create_otlp_provider

__all__ = ["GuardedSpanExporter", "create_otlp_provider"]
