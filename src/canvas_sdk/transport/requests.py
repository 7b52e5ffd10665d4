import asyncio

import httpx
import requests

from .base import BaseTransport
from .base import decoded_headers


class RequestsTransport(BaseTransport):
    """
    Sync transport implementation using requests.Session.

    This transport wraps the synchronous requests library in an async interface
    to provide compatibility with the async-first SDK design.

    Note: This is a compatibility layer for users who need to use requests
    in an async context. For best performance, use httpx or aiohttp.
    """

    def __init__(self, timeout: float = 30.0):
        self._timeout = timeout
        self._session = requests.Session()

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Async wrapper around synchronous requests.

        This method runs the synchronous requests call in a thread pool
        to avoid blocking the event loop.
        """
        body = await request.aread()
        loop = asyncio.get_running_loop()

        def make_request() -> requests.Response:
            return self._session.request(
                method=request.method,
                url=str(request.url),
                headers=dict(request.headers),
                data=body or None,
                timeout=self._timeout,
            )

        try:
            response = await loop.run_in_executor(None, make_request)
        except requests.Timeout as e:
            raise httpx.TimeoutException(str(e), request=request) from e
        except requests.ConnectionError as e:
            raise httpx.ConnectError(str(e), request=request) from e

        return httpx.Response(
            response.status_code,
            headers=decoded_headers(response.headers.items()),
            content=response.content,
            request=request,
            extensions={"reason_phrase": (response.reason or "").encode("latin-1")},
        )

    async def close(self):
        """
        Async wrapper for closing the session.
        """
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._session.close)
