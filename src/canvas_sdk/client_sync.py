"""
Synchronous wrapper for CanvasClient.

This module provides a synchronous interface on top of the async CanvasClient
to support users who need sync operations.
"""

import asyncio
from typing import Any

import httpx

from .client import CanvasClient
from .config import CanvasSettings
from .middleware import Middleware


class CanvasClientSync:
    """
    Synchronous wrapper for CanvasClient.

    A private event loop is kept for the lifetime of the wrapper so that the
    underlying transport connections and middleware state survive between
    calls.

    Example:
        with CanvasClientSync(settings) as client:
            course = client.get_json("courses/42")
            client.put("courses/42", json={"course": {"name": "Renamed"}})
    """

    def __init__(
        self,
        settings: CanvasSettings,
        transport_name: str | None = None,
        middlewares: list[Middleware] | None = None,
        **kwargs,
    ):
        """
        Initialize the synchronous client.

        Args:
            settings: SDK configuration settings
            transport_name: HTTP transport to use (httpx, aiohttp, requests)
            middlewares: Middleware chain, outermost first
            **kwargs: Passed through to CanvasClient
        """
        self._loop = asyncio.new_event_loop()
        self._async_client = CanvasClient(
            settings=settings,
            transport_name=transport_name,
            middlewares=middlewares,
            **kwargs,
        )

    @property
    def async_client(self) -> CanvasClient:
        return self._async_client

    def _run(self, coro):
        return self._loop.run_until_complete(coro)

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Synchronous request through the middleware chain.

        Raises:
            CanvasAPIError: On API error
        """
        return self._run(self._async_client.request(method, path, **kwargs))

    def get(self, path: str, **kwargs) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs) -> httpx.Response:
        return self.request("PUT", path, **kwargs)

    def patch(self, path: str, **kwargs) -> httpx.Response:
        return self.request("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    def get_json(self, path: str, **kwargs) -> Any:
        return self._run(self._async_client.get_json(path, **kwargs))

    def close(self):
        """
        Synchronous cleanup of client resources.
        """
        if self._loop.is_closed():
            return
        try:
            self._run(self._async_client.aclose())
        finally:
            self._loop.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
