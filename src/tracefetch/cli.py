"""Command line entry point: fetch a URL and export the spans it produced."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from dotenv import load_dotenv

from tracefetch import __version__
from tracefetch._internal.logging import configure_logging
from tracefetch._internal.span_log import SpanLoggingProcessor
from tracefetch.config import (
    DEFAULT_BACKEND,
    DEFAULT_COLLECTOR_ENDPOINT,
    DEFAULT_LOG_FILTER,
    DEFAULT_URL,
    RunConfig,
    resolve_config,
)
from tracefetch.exceptions import ConfigurationError
from tracefetch.orchestrator import run
from tracefetch.sdk.lifecycle import init as init_exporter
from tracefetch.sdk.lifecycle import shutdown as shutdown_exporter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REQUEST_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tracefetch",
        description="Fetch a URL and export spans.",
    )
    parser.add_argument(
        "--url", help=f"URL to fetch (default: {DEFAULT_URL})"
    )
    parser.add_argument(
        "--collector-endpoint",
        help=f"OTLP collector endpoint (default: {DEFAULT_COLLECTOR_ENDPOINT})",
    )
    parser.add_argument(
        "--backend",
        help=f"request backend: httpx, aiohttp or requests (default: {DEFAULT_BACKEND})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=None,
        help="produce JSON output including span information",
    )
    parser.add_argument(
        "--log",
        help=f"log filter, e.g. 'INFO,tracefetch=DEBUG' (default: {DEFAULT_LOG_FILTER})",
    )
    parser.add_argument("--service-name", help="service.name of exported spans")
    parser.add_argument("--config", help="path to a YAML configuration file")
    parser.add_argument(
        "--fail-on-error",
        action="store_true",
        default=None,
        help="exit with status 1 when the request fails",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _resolve(args: argparse.Namespace) -> RunConfig:
    return resolve_config(
        args.config,
        url=args.url,
        backend=args.backend,
        exporter__endpoint=args.collector_endpoint,
        service__name=args.service_name,
        logging__json=args.json,
        logging__filter=args.log,
        fail_on_error=args.fail_on_error,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run tracefetch and return the process exit status."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = _resolve(args)
        configure_logging(config.logging.json, config.logging.filter)
    except ConfigurationError as e:
        print(f"tracefetch: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.info(
        "Parsed arguments",
        extra={
            "url": config.url,
            "backend": config.backend,
            "collector_endpoint": config.exporter.endpoint,
            "json": config.logging.json,
            "log": config.logging.filter,
        },
    )

    span_level = logging.INFO if config.logging.json else logging.DEBUG
    handle = init_exporter(
        config.exporter.endpoint,
        config.service.name,
        exporter_config=config.exporter,
        span_processors=[SpanLoggingProcessor(span_level)],
        set_global=True,
    )

    try:
        outcome = asyncio.run(run(config, handle))
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    finally:
        shutdown_exporter(handle)
        logger.info("Shut down tracer provider")

    if outcome.ok:
        logger.info("Response text:\n%s", outcome.text)
        return EXIT_OK

    logger.error("No response text: %s", outcome.describe())
    return EXIT_REQUEST_FAILED if config.fail_on_error else EXIT_OK
