"""
Async-first Canvas LMS API client.

This module provides the CanvasClient class that sends requests to the Canvas
REST API through a middleware pipeline. Features include:

- Async-first design with async/await for all API operations
- API key or OAuth2 authentication with automatic token refresh
- Multiple HTTP transport backends (httpx, aiohttp, requests)
- Composable middleware chain:
  OAuth refresh -> rate limit -> cache -> retry -> logging -> transport
- Client-side leaky-bucket rate limiting mirroring Canvas quotas
- Opt-in response caching with invalidation on mutation
- Comprehensive error handling with meaningful exceptions

Example usage:
    from canvas_sdk import CanvasClient, CanvasSettings

    settings = CanvasSettings(base_url="https://school.instructure.com", api_key="...")
    async with CanvasClient(settings) as client:
        courses = await client.get_json("courses", params={"per_page": 50})
"""

from typing import Any
from typing import Optional
from typing import Sequence

import httpx

from canvas_sdk.auth import AuthManager
from canvas_sdk.cache_middleware import CacheMiddleware
from canvas_sdk.config import CanvasSettings
from canvas_sdk.exceptions import CanvasAPIError
from canvas_sdk.logging_middleware import LoggingMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Middleware
from canvas_sdk.middleware import Options
from canvas_sdk.middleware import compose
from canvas_sdk.oauth_middleware import OAuth2RefreshMiddleware
from canvas_sdk.rate_limit_middleware import RateLimitMiddleware
from canvas_sdk.retry_middleware import RetryMiddleware
from canvas_sdk.token_store import FileTokenStore
from canvas_sdk.token_store import TokenStore
from canvas_sdk.transport import BaseTransport
from canvas_sdk.transport import get_transport

_UNVERSIONED_PREFIXES = ("/api/", "/login/")


def build_middleware(settings: CanvasSettings, auth: AuthManager) -> list[Middleware]:
    """
    Default middleware chain for `settings`, outermost first.

    Rate limiting wraps retry so that one logical request is charged once,
    however many attempts it takes.
    """
    return [
        OAuth2RefreshMiddleware(auth),
        RateLimitMiddleware(
            {
                "enabled": settings.rate_limit_enabled,
                "wait_on_limit": settings.rate_limit_wait_on_limit,
                "max_wait_time": settings.rate_limit_max_wait_time,
            },
            credential=auth.active_credential,
            base_url=settings.base_url,
        ),
        CacheMiddleware(
            {
                "enabled": settings.cache_enabled,
                "default_ttl": settings.cache_default_ttl,
            }
        ),
        RetryMiddleware(
            {
                "max_attempts": settings.retry_max_attempts if settings.retry_enabled else 1,
            }
        ),
        LoggingMiddleware(
            config={"enabled": settings.logging_enabled, "log_level": settings.log_level}
        ),
    ]


class CanvasClient:
    """
    Async client for the Canvas LMS REST API.

    Args:
        settings (CanvasSettings): SDK configuration with support for environment variables
        transport_name (str | None): Transport backend ('httpx', 'aiohttp', 'requests').
                                   Defaults to settings.transport
        middlewares (list[Middleware] | None): Middleware chain, outermost first.
                                             Defaults to `build_middleware(settings, auth)`
        auth (AuthManager | None): Credential holder; built from settings when omitted
        token_store (TokenStore | None): Persistence for refreshed OAuth tokens
        transport (BaseTransport | None): Ready-made transport, overrides transport_name

    Example:
        settings = CanvasSettings(base_url="https://school.instructure.com", api_key="...")
        client = CanvasClient(settings)
        response = await client.get("courses/42", options={"cache": False})
        await client.aclose()
    """

    def __init__(
        self,
        settings: CanvasSettings,
        transport_name: str | None = None,
        middlewares: Sequence[Middleware] | None = None,
        auth: AuthManager | None = None,
        token_store: TokenStore | None = None,
        transport: BaseTransport | None = None,
    ):
        self.settings = settings

        if auth is None:
            if token_store is None and settings.auth_mode == "oauth":
                token_store = FileTokenStore(settings.token_cache_path)
            auth = AuthManager(settings, token_store=token_store)
        self.auth = auth

        self.transport = transport or get_transport(
            transport_name or settings.transport, timeout=settings.timeout
        )
        self.middlewares = list(
            middlewares if middlewares is not None else build_middleware(settings, auth)
        )
        self._handler: Handler = compose(self.middlewares, self._send)

    def middleware(self, name: str) -> Optional[Middleware]:
        """Look up an installed middleware by name."""
        for middleware in self.middlewares:
            if middleware.get_name() == name:
                return middleware
        return None

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: Any = None,
        files: Any = None,
        headers: dict[str, str] | None = None,
        options: Options | None = None,
    ) -> httpx.Response:
        """
        Send a request through the middleware chain.

        Args:
            method: HTTP method
            path: Path relative to `/api/<version>/`, an absolute API path or a full URL
            params: Query parameters
            json: JSON body
            data: Form body
            files: Multipart files
            headers: Extra request headers
            options: Per-request middleware options
                (cache, cache_refresh, cache_ttl, rate_limit_bucket, ...)

        Returns:
            httpx.Response: The final response.

        Raises:
            CanvasAPIError: On HTTP errors (>= 400 when `http_errors` is on),
                transport failures, local rate limiting and auth failures.
        """
        await self.auth.load_cached_token()

        request_headers = {}
        # an OAuth client without a token yet is authorized by the refresh middleware
        if not self.auth.is_oauth or self.auth.active_credential():
            request_headers["Authorization"] = self.auth.authorization_header()
        request_headers.update(headers or {})

        request = httpx.Request(
            method.upper(),
            self.build_url(path),
            params=params,
            json=json,
            data=data,
            files=files,
            headers=request_headers,
        )

        request_options: Options = dict(options or {})
        if params:
            request_options.setdefault("query", params)

        try:
            return await self._handler(request, request_options)
        except CanvasAPIError:
            raise
        except httpx.HTTPStatusError as e:
            response = e.response
            raise CanvasAPIError(
                f"{request.method} {request.url} failed: "
                f"{response.status_code} {response.reason_phrase}",
                details=response.text,
                status_code=response.status_code,
                response=response,
            ) from e
        except httpx.TransportError as e:
            raise CanvasAPIError(f"{request.method} {request.url} failed: {e!r}") from e

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def get_json(self, path: str, **kwargs) -> Any:
        response = await self.get(path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise CanvasAPIError(
                f"Invalid JSON from GET {path}", details=response.text
            ) from e

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not self.settings.base_url:
            raise CanvasAPIError("Canvas base URL is not configured")

        base = self.settings.base_url.rstrip("/")
        path = "/" + path.lstrip("/")
        if not path.startswith(_UNVERSIONED_PREFIXES):
            path = f"/api/{self.settings.api_version}{path}"
        return base + path

    async def _send(self, request: httpx.Request, options: Options) -> httpx.Response:
        """Terminal handler: hand the request to the transport."""
        response = await self.transport.send(request)
        if self.settings.http_errors and response.status_code >= 400:
            response.raise_for_status()
        return response

    async def aclose(self):
        """
        Gracefully close client resources and transport connections.
        """
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
