"""Backend selection: map a configured name to a backend adapter.

Adapter modules are imported lazily, so only the chosen backend's client
library is imported.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from tracefetch.backends._base import Backend, BackendAdapter, SpawningBackendAdapter

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

__all__ = [
    "BACKEND_ADAPTERS",
    "Backend",
    "BackendAdapter",
    "SpawningBackendAdapter",
    "select",
]

logger = logging.getLogger(__name__)

# Registry of adapters: backend -> (module_path, class_name)
BACKEND_ADAPTERS: dict[Backend, tuple[str, str]] = {
    Backend.PRIMARY: ("tracefetch.backends.httpx", "HttpxBackend"),
    Backend.SECONDARY: ("tracefetch.backends.aiohttp", "AiohttpBackend"),
    Backend.TERTIARY: ("tracefetch.backends.requests", "RequestsBackend"),
}


def select(name: str, tracer: Tracer | None = None) -> BackendAdapter:
    """Return a new adapter for the backend called ``name``.

    Args:
        name: Backend name, matched case-insensitively after trimming.
        tracer: Tracer for the request span. Defaults to the global one.

    Returns:
        An adapter instance for the matching backend.

    Raises:
        UnknownBackendError: If ``name`` matches no backend. There is no
            fallback backend.
    """
    backend = Backend.parse(name)

    module_path, class_name = BACKEND_ADAPTERS[backend]
    module = importlib.import_module(module_path)
    adapter_class = getattr(module, class_name)

    logger.debug("Selected backend '%s' for '%s'", backend.value, name)
    adapter: BackendAdapter = adapter_class(tracer=tracer)
    return adapter
