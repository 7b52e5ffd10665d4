"""
Aiohttp transport implementation for Canvas SDK.

This module provides AiohttpTransport, an alternative async HTTP client for the SDK.
Responses are converted to `httpx.Response` so the middleware chain sees the
same types whatever backend is used; aiohttp connection and timeout errors
are mapped to the matching httpx exceptions.
"""

import asyncio

import aiohttp
import httpx

from .base import BaseTransport
from .base import decoded_headers


class AiohttpTransport(BaseTransport):
    """
    Async transport implementation using aiohttp.ClientSession.
    """

    def __init__(self, timeout: float = 30.0):
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def send(self, request: httpx.Request) -> httpx.Response:
        # Create session if not exists
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            )

        body = await request.aread()
        try:
            async with self._session.request(
                method=request.method,
                url=str(request.url),
                headers=list(request.headers.multi_items()),
                data=body or None,
            ) as response:
                content = await response.read()
                return httpx.Response(
                    response.status,
                    headers=decoded_headers(response.raw_headers),
                    content=content,
                    request=request,
                    extensions={"reason_phrase": (response.reason or "").encode("ascii")},
                )
        except asyncio.TimeoutError as e:
            raise httpx.TimeoutException(str(e) or "Request timed out", request=request) from e
        except aiohttp.ClientConnectionError as e:
            raise httpx.ConnectError(str(e), request=request) from e

    async def close(self):
        if self._session:
            await self._session.close()
