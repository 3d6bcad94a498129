"""Local log sink: filter parsing, text and JSON formatters."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from opentelemetry import trace

from tracefetch.exceptions import ConfigurationError

logger = logging.getLogger("tracefetch")

# Attributes every LogRecord has; anything else on a record came from `extra`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_LEVEL_ALIASES = {"TRACE": "DEBUG", "WARN": "WARNING", "OFF": "CRITICAL"}

_HANDLER_MARKER = "_tracefetch_handler"


def _parse_level(text: str) -> int:
    name = text.strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: '{text.strip()}'")
    return level


def parse_log_filter(filter_text: str) -> tuple[int, dict[str, int]]:
    """Parse a filter such as ``"INFO,tracefetch=DEBUG,urllib3=WARNING"``.

    A bare level sets the root level, ``name=LEVEL`` sets a named logger.
    The last bare level wins.

    Returns:
        The root level and a mapping of logger name to level.

    Raises:
        ConfigurationError: If a directive is malformed.
    """
    root_level = logging.WARNING
    levels: dict[str, int] = {}
    for directive in filter_text.split(","):
        directive = directive.strip()
        if not directive:
            continue
        name, sep, level = directive.partition("=")
        if not sep:
            root_level = _parse_level(name)
            continue
        name = name.strip()
        if not name:
            raise ConfigurationError(f"Invalid log directive: '{directive}'")
        levels[name.replace("::", ".")] = _parse_level(level)
    return root_level, levels


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the structured fields passed through ``extra``."""
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}


class TextFormatter(logging.Formatter):
    """``LEVEL message key=value ...`` without timestamps or logger names."""

    def format(self, record: logging.LogRecord) -> str:
        line = f"{record.levelname:>7} {record.getMessage()}"
        fields = record_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including the active span when present."""

    def format(self, record: logging.LogRecord) -> str:
        obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
        }

        fields = record_fields(record)
        if fields:
            obj["fields"] = fields

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            span: dict[str, Any] = {
                "trace_id": trace.format_trace_id(span_context.trace_id),
                "span_id": trace.format_span_id(span_context.span_id),
            }
            name = getattr(trace.get_current_span(), "name", None)
            if name:
                span["name"] = name
            obj["span"] = span

        if record.exc_info:
            obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(obj, default=str)


def configure_logging(
    json_output: bool = False,
    log_filter: str = "INFO",
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install the process log handler on the root logger.

    Calling this again replaces the handler installed by the previous call;
    handlers added by anything else are left alone.

    Raises:
        ConfigurationError: If the filter cannot be parsed.
    """
    root_level, levels = parse_log_filter(log_filter)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else TextFormatter())
    setattr(handler, _HANDLER_MARKER, True)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(root_level)

    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)

    return handler
