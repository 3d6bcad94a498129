"""Exception classes for tracefetch."""

from __future__ import annotations


class TracefetchError(Exception):
    """Base class for all tracefetch errors."""


class ConfigurationError(TracefetchError):
    """Raised when configuration is invalid.

    This is the only error that aborts a run. It is raised before any span
    is created (unknown backend) or before the exporter exists (bad config
    file, bad log filter).
    """


class UnknownBackendError(ConfigurationError):
    """Raised when a backend name matches none of the known backends."""

    def __init__(self, name: str, valid: list[str]) -> None:
        self.name = name
        self.valid = valid
        super().__init__(
            f"Unknown backend: '{name}'. Valid backends: {', '.join(valid)}"
        )


class RequestError(TracefetchError):
    """Base class for request-path failures.

    These are never raised past the orchestrator; adapters return them
    inside a failed Outcome.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class RequestFailed(RequestError):
    """Network or protocol level failure while making the request."""


class DecodeFailed(RequestError):
    """The response body could not be read as text."""


class ExportFailure(TracefetchError):
    """Spans could not be delivered to the collector.

    Logged by the exporter lifecycle, never propagated as a run failure.
    """
