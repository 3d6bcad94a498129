"""Configuration loading, parsing, and validation for tracefetch.

Configuration comes from three layers, lowest precedence first:

1. An optional YAML file (``--config`` or ``TRACEFETCH_CONFIG_PATH``)
2. Environment variables (``TRACEFETCH_*`` and the standard ``OTEL_*`` ones)
3. Command line flags
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tracefetch.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Pattern for environment variable substitution: ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_URL = "http://www.google.com/"
DEFAULT_BACKEND = "httpx"
DEFAULT_SERVICE_NAME = "tracefetch"
DEFAULT_COLLECTOR_ENDPOINT = "http://localhost:4318/v1/traces"
DEFAULT_LOG_FILTER = "DEBUG,tracefetch=DEBUG"
DEFAULT_SHUTDOWN_TIMEOUT_MILLIS = 5000

CONFIG_PATH_ENV = "TRACEFETCH_CONFIG_PATH"

# Environment variable -> (section, key). Section None means top level.
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "TRACEFETCH_URL": (None, "url"),
    "TRACEFETCH_BACKEND": (None, "backend"),
    "TRACEFETCH_LOG": ("logging", "filter"),
    "TRACEFETCH_JSON": ("logging", "json"),
    "TRACEFETCH_FAIL_ON_ERROR": (None, "fail_on_error"),
    "OTEL_SERVICE_NAME": ("service", "name"),
    "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": ("exporter", "endpoint"),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class ServiceConfig:
    """Service identification configuration."""

    name: str = DEFAULT_SERVICE_NAME


@dataclass
class ExporterConfig:
    """Trace exporter configuration."""

    endpoint: str = DEFAULT_COLLECTOR_ENDPOINT
    # Transport protocol: "http" (default) or "grpc"
    transport: str = "http"
    # True for BatchSpanProcessor (default), False for SimpleSpanProcessor
    batch: bool = True
    # Also print finished spans to stdout
    console: bool = False
    shutdown_timeout_millis: int = DEFAULT_SHUTDOWN_TIMEOUT_MILLIS


@dataclass
class LoggingConfig:
    """Local log output configuration."""

    json: bool = False
    filter: str = DEFAULT_LOG_FILTER


@dataclass
class ValidationConfig:
    """Validation mode configuration."""

    mode: str = "permissive"  # "strict" | "permissive"


@dataclass
class RunConfig:
    """Complete configuration for a single run."""

    url: str = DEFAULT_URL
    backend: str = DEFAULT_BACKEND
    service: ServiceConfig = field(default_factory=ServiceConfig)
    exporter: ExporterConfig = field(default_factory=ExporterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    # Exit non-zero when the request fails
    fail_on_error: bool = False
    root_span_name: str = "main"

    @property
    def is_strict(self) -> bool:
        """Return True if validation mode is strict."""
        return self.validation.mode == "strict"


def parse_bool(value: Any) -> bool:
    """Parse a boolean from YAML or environment values.

    Raises:
        ConfigurationError: If a string value is not a recognised boolean.
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean value: '{value}'")


def _substitute_env_vars(value: str, strict: bool) -> str:
    """Substitute ${VAR_NAME} patterns with environment variable values.

    Args:
        value: String potentially containing ${VAR_NAME} patterns.
        strict: If True, raise ConfigurationError for missing env vars.

    Returns:
        String with environment variables substituted.

    Raises:
        ConfigurationError: If strict=True and an env var is not set.
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise ConfigurationError(
                    f"Environment variable '{var_name}' is not set"
                )
            logger.warning(
                "Environment variable '%s' not set, using empty string", var_name
            )
            return ""
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any, strict: bool) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v, strict) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item, strict) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data, strict)
    else:
        return data


def _parse_service_config(data: dict[str, Any]) -> ServiceConfig:
    """Parse service configuration section."""
    return ServiceConfig(name=data.get("name") or DEFAULT_SERVICE_NAME)


def _parse_exporter_config(data: dict[str, Any]) -> ExporterConfig:
    """Parse exporter configuration section."""
    transport = data.get("transport", "http")
    if transport not in ("http", "grpc"):
        logger.warning("Unknown transport '%s', defaulting to 'http'", transport)
        transport = "http"

    timeout = data.get("shutdown_timeout_millis", DEFAULT_SHUTDOWN_TIMEOUT_MILLIS)
    try:
        timeout = int(timeout)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"exporter.shutdown_timeout_millis must be an integer, got '{timeout}'"
        ) from None

    return ExporterConfig(
        endpoint=data.get("endpoint") or DEFAULT_COLLECTOR_ENDPOINT,
        transport=transport,
        batch=parse_bool(data.get("batch", True)),
        console=parse_bool(data.get("console", False)),
        shutdown_timeout_millis=timeout,
    )


def _parse_logging_config(data: dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration section."""
    return LoggingConfig(
        json=parse_bool(data.get("json", False)),
        filter=data.get("filter") or DEFAULT_LOG_FILTER,
    )


def _parse_validation_config(data: dict[str, Any]) -> ValidationConfig:
    """Parse validation configuration section."""
    mode = data.get("mode", "permissive")
    if mode not in ("strict", "permissive"):
        logger.warning("Unknown validation mode '%s', defaulting to permissive", mode)
        mode = "permissive"
    return ValidationConfig(mode=mode)


def _validate_config(config: RunConfig) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []

    if not config.url:
        errors.append("url is required")
    if not config.exporter.endpoint:
        errors.append("exporter.endpoint is required")
    if config.exporter.shutdown_timeout_millis <= 0:
        errors.append("exporter.shutdown_timeout_millis must be positive")

    return errors


def load_config(path: str | Path, strict: bool | None = None) -> RunConfig:
    """Load and parse configuration from a YAML file.

    The backend name is not checked here; the backend selector rejects
    unknown names once the exporter is up.

    Args:
        path: Path to the YAML configuration file.
        strict: Override validation mode. If None, use mode from config file.

    Returns:
        Parsed RunConfig.

    Raises:
        ConfigurationError: If file doesn't exist, YAML is invalid,
                           or validation fails in strict mode.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw_data = yaml.safe_load(f)
            if raw_data is None:
                raw_data = {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got {type(raw_data).__name__}"
        )

    # Determine validation mode early (needed for env var substitution)
    validation_data = raw_data.get("validation") or {}
    validation_mode = validation_data.get("mode", "permissive")
    is_strict = strict if strict is not None else (validation_mode == "strict")

    data = _substitute_env_vars_recursive(raw_data, strict=is_strict)

    config = RunConfig(
        url=data.get("url") or DEFAULT_URL,
        backend=str(data.get("backend") or DEFAULT_BACKEND),
        service=_parse_service_config(data.get("service") or {}),
        exporter=_parse_exporter_config(data.get("exporter") or {}),
        logging=_parse_logging_config(data.get("logging") or {}),
        validation=_parse_validation_config(data.get("validation") or {}),
        fail_on_error=parse_bool((data.get("exit") or {}).get("fail_on_error", False)),
    )

    # Override validation mode if specified
    if strict is not None:
        config.validation.mode = "strict" if strict else "permissive"

    errors = _validate_config(config)
    if errors:
        if config.is_strict:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )
        logger.warning("Configuration problems ignored: %s", "; ".join(errors))

    return config


def _set_value(config: RunConfig, section: str | None, key: str, value: Any) -> None:
    target: Any = config if section is None else getattr(config, section)
    if isinstance(getattr(target, key), bool):
        value = parse_bool(value)
    setattr(target, key, value)


def apply_env_overrides(
    config: RunConfig, environ: Mapping[str, str] | None = None
) -> RunConfig:
    """Apply environment variable overrides in place and return the config."""
    environ = os.environ if environ is None else environ
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        _set_value(config, section, key, value)
        logger.debug("Config %s overridden from %s", key, env_name)
    return config


def apply_overrides(config: RunConfig, **overrides: Any) -> RunConfig:
    """Apply explicit overrides (usually command line flags) in place.

    Keys are dotted paths such as ``exporter.endpoint`` written with ``__``
    (``exporter__endpoint``). ``None`` values are skipped.
    """
    for dotted, value in overrides.items():
        if value is None:
            continue
        section, _, key = dotted.rpartition("__")
        _set_value(config, section or None, key, value)
    return config


def resolve_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> RunConfig:
    """Build the effective RunConfig from file, environment and flags.

    Args:
        config_path: Explicit YAML path, or None to fall back to the
            TRACEFETCH_CONFIG_PATH environment variable (and then defaults).
        environ: Environment mapping, ``os.environ`` when omitted.
        **overrides: Flag values, see apply_overrides.

    Raises:
        ConfigurationError: If the file cannot be loaded or a value is invalid.
    """
    environ = os.environ if environ is None else environ
    if config_path is None:
        config_path = environ.get(CONFIG_PATH_ENV) or None

    config = load_config(config_path) if config_path is not None else RunConfig()
    apply_env_overrides(config, environ)
    apply_overrides(config, **overrides)
    return config
