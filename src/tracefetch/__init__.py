"""tracefetch: fetch one URL through a pluggable HTTP backend and trace it.

    import asyncio
    import tracefetch
    from tracefetch.config import RunConfig

    handle = tracefetch.init("http://localhost:4318/v1/traces", "tracefetch")
    try:
        outcome = asyncio.run(tracefetch.run(RunConfig(backend="aiohttp"), handle))
    finally:
        tracefetch.shutdown(handle)
"""

from __future__ import annotations

from tracefetch.exceptions import (
    ConfigurationError,
    DecodeFailed,
    ExportFailure,
    RequestFailed,
    UnknownBackendError,
)
from tracefetch.outcome import Outcome

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DecodeFailed",
    "ExportFailure",
    "Outcome",
    "RequestFailed",
    "UnknownBackendError",
    "__version__",
    "init",
    "run",
    "select",
    "shutdown",
]

# name -> (module, attribute); imported on first access
_LAZY_ATTRS = {
    "init": ("tracefetch.sdk.lifecycle", "init"),
    "shutdown": ("tracefetch.sdk.lifecycle", "shutdown"),
    "run": ("tracefetch.orchestrator", "run"),
    "select": ("tracefetch.backends", "select"),
}


def __getattr__(name: str):
    if name in _LAZY_ATTRS:
        import importlib

        module_path, attr = _LAZY_ATTRS[name]
        return getattr(importlib.import_module(module_path), attr)
    raise AttributeError(f"module 'tracefetch' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(__all__)
