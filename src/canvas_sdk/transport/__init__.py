"""
Transport layer for Canvas SDK.

A transport sends one `httpx.Request` and returns a fully read
`httpx.Response`; it sits at the bottom of the middleware chain.

- httpx: async HTTP client (default)
- aiohttp: async HTTP client, needs the `aiohttp` extra
- requests: sync HTTP client run in a worker thread, needs the `requests` extra
"""

from .base import BaseTransport
from .httpx import HttpxTransport

TRANSPORT_NAMES = ("httpx", "aiohttp", "requests")


def get_transport(name: str, timeout: float = 30.0) -> BaseTransport:
    """
    Build the transport called `name` (case-insensitive).

    Raises:
        ValueError: Unknown transport name.
        ImportError: The backend library is not installed.
    """
    name = name.strip().lower()
    if name == "httpx":
        return HttpxTransport(timeout)

    if name not in TRANSPORT_NAMES:
        raise ValueError(
            f"Unknown transport: {name}. Available: {', '.join(TRANSPORT_NAMES)}"
        )

    try:
        if name == "aiohttp":
            from .aiohttp import AiohttpTransport

            return AiohttpTransport(timeout)

        from .requests import RequestsTransport

        return RequestsTransport(timeout)
    except ImportError as err:
        raise ImportError(
            f"{name} transport requires the {name} package. "
            f"Install with: pip install canvas-sdk[{name}]"
        ) from err


__all__ = ["BaseTransport", "HttpxTransport", "TRANSPORT_NAMES", "get_transport"]
