"""Unit tests for configuration parsing, overrides and validation.

Requirements covered:
- YAML config file with ${VAR} substitution
- Precedence: flags > environment > file > defaults
- Strict vs permissive validation
- Backend names are passed through untouched (validated by the selector)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tracefetch.config import (
    DEFAULT_BACKEND,
    DEFAULT_COLLECTOR_ENDPOINT,
    DEFAULT_URL,
    RunConfig,
    apply_env_overrides,
    apply_overrides,
    load_config,
    parse_bool,
    resolve_config,
)
from tracefetch.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


FULL_CONFIG = """url: http://example.test/ok
backend: aiohttp

service:
  name: probe

exporter:
  endpoint: ${COLLECTOR_URL}/v1/traces
  transport: grpc
  batch: false
  console: true
  shutdown_timeout_millis: 250

logging:
  json: true
  filter: "INFO,tracefetch=DEBUG"

exit:
  fail_on_error: true
"""


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config()."""

    def test_full_config_parsed(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN a config file using every section
        WHEN it is loaded
        THEN every value is parsed and ${VAR} is substituted
        """
        monkeypatch.setenv("COLLECTOR_URL", "http://collector:4318")
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text(FULL_CONFIG)

        config = load_config(config_path)

        assert config.url == "http://example.test/ok"
        assert config.backend == "aiohttp"
        assert config.service.name == "probe"
        assert config.exporter.endpoint == "http://collector:4318/v1/traces"
        assert config.exporter.transport == "grpc"
        assert config.exporter.batch is False
        assert config.exporter.console is True
        assert config.exporter.shutdown_timeout_millis == 250
        assert config.logging.json is True
        assert config.logging.filter == "INFO,tracefetch=DEBUG"
        assert config.fail_on_error is True

    def test_empty_file_uses_defaults(self, tmp_path: "Path") -> None:
        """
        GIVEN an empty config file
        WHEN it is loaded
        THEN all defaults apply
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("")

        config = load_config(config_path)

        assert config.url == DEFAULT_URL
        assert config.backend == DEFAULT_BACKEND
        assert config.exporter.endpoint == DEFAULT_COLLECTOR_ENDPOINT
        assert config.exporter.batch is True
        assert config.fail_on_error is False

    def test_unknown_backend_is_not_rejected_at_load(self, tmp_path: "Path") -> None:
        """
        GIVEN a config naming an unknown backend
        WHEN it is loaded
        THEN loading succeeds; the selector rejects it later
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("backend: bogus\n")

        assert load_config(config_path).backend == "bogus"

    def test_missing_file_raises(self, tmp_path: "Path") -> None:
        """
        GIVEN a path that does not exist
        WHEN it is loaded
        THEN ConfigurationError is raised
        """
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml_raises(self, tmp_path: "Path") -> None:
        """
        GIVEN a file with broken YAML
        WHEN it is loaded
        THEN ConfigurationError is raised
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("url: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(config_path)

    def test_missing_env_var_permissive(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN a ${VAR} reference to an unset variable in permissive mode
        WHEN the config is loaded
        THEN the variable becomes an empty string
        """
        monkeypatch.delenv("TRACEFETCH_TEST_UNSET", raising=False)
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("url: http://host${TRACEFETCH_TEST_UNSET}/x\n")

        assert load_config(config_path).url == "http://host/x"

    def test_missing_env_var_strict(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN a ${VAR} reference to an unset variable in strict mode
        WHEN the config is loaded
        THEN ConfigurationError is raised
        """
        monkeypatch.delenv("TRACEFETCH_TEST_UNSET", raising=False)
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text(
            "url: http://host${TRACEFETCH_TEST_UNSET}/x\n"
            "validation:\n  mode: strict\n"
        )

        with pytest.raises(ConfigurationError, match="TRACEFETCH_TEST_UNSET"):
            load_config(config_path)

    def test_unknown_transport_falls_back_to_http(self, tmp_path: "Path") -> None:
        """
        GIVEN an unknown exporter transport
        WHEN the config is loaded
        THEN transport falls back to http
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("exporter:\n  transport: carrier-pigeon\n")

        assert load_config(config_path).exporter.transport == "http"

    def test_strict_validation_rejects_bad_timeout(self, tmp_path: "Path") -> None:
        """
        GIVEN a non-positive shutdown timeout in strict mode
        WHEN the config is loaded
        THEN ConfigurationError is raised
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("exporter:\n  shutdown_timeout_millis: 0\n")

        with pytest.raises(ConfigurationError, match="shutdown_timeout_millis"):
            load_config(config_path, strict=True)


@pytest.mark.unit
class TestOverrides:
    """Tests for environment and flag overrides."""

    def test_env_overrides(self) -> None:
        """
        GIVEN TRACEFETCH_* and OTEL_* variables
        WHEN they are applied
        THEN the matching fields change
        """
        config = apply_env_overrides(
            RunConfig(),
            {
                "TRACEFETCH_URL": "http://env.test/",
                "TRACEFETCH_BACKEND": "requests",
                "TRACEFETCH_JSON": "yes",
                "TRACEFETCH_FAIL_ON_ERROR": "1",
                "OTEL_SERVICE_NAME": "env-service",
                "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": "http://otel:4318/v1/traces",
            },
        )

        assert config.url == "http://env.test/"
        assert config.backend == "requests"
        assert config.logging.json is True
        assert config.fail_on_error is True
        assert config.service.name == "env-service"
        assert config.exporter.endpoint == "http://otel:4318/v1/traces"

    def test_flag_overrides_skip_none(self) -> None:
        """
        GIVEN overrides where some values are None
        WHEN they are applied
        THEN only the non-None ones change the config
        """
        config = apply_overrides(
            RunConfig(),
            url="http://flag.test/",
            backend=None,
            exporter__endpoint="http://flag:4318/v1/traces",
            logging__json=True,
        )

        assert config.url == "http://flag.test/"
        assert config.backend == DEFAULT_BACKEND
        assert config.exporter.endpoint == "http://flag:4318/v1/traces"
        assert config.logging.json is True

    def test_precedence_flag_env_file(self, tmp_path: "Path") -> None:
        """
        GIVEN the same option in a file, the environment and a flag
        WHEN the config is resolved
        THEN the flag wins over the environment, which wins over the file
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text(
            "url: http://file.test/\nbackend: aiohttp\nservice:\n  name: file\n"
        )
        environ = {"TRACEFETCH_BACKEND": "requests", "OTEL_SERVICE_NAME": "env"}

        config = resolve_config(config_path, environ=environ, service__name="flag")

        assert config.url == "http://file.test/"
        assert config.backend == "requests"
        assert config.service.name == "flag"

    def test_config_path_from_environment(self, tmp_path: "Path") -> None:
        """
        GIVEN TRACEFETCH_CONFIG_PATH pointing at a file
        WHEN the config is resolved without an explicit path
        THEN that file is loaded
        """
        config_path = tmp_path / "tracefetch.yaml"
        config_path.write_text("url: http://from-env-path.test/\n")

        config = resolve_config(environ={"TRACEFETCH_CONFIG_PATH": str(config_path)})

        assert config.url == "http://from-env-path.test/"

    def test_invalid_boolean_raises(self) -> None:
        """
        GIVEN a boolean option with a non-boolean value
        WHEN it is applied
        THEN ConfigurationError is raised
        """
        with pytest.raises(ConfigurationError):
            apply_env_overrides(RunConfig(), {"TRACEFETCH_JSON": "maybe"})

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(True, True), ("TRUE", True), ("on", True), ("0", False), ("no", False)],
    )
    def test_parse_bool(self, value: object, expected: bool) -> None:
        assert parse_bool(value) is expected
