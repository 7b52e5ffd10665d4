"""
Middleware interface for CanvasClient.

This module defines the `Middleware` protocol and the `AbstractMiddleware`
base class used in Canvas SDK. A middleware wraps the next handler in the
chain and returns a new handler, so it can short-circuit, delay, retry or
mutate the request/response on its way through.

Built-in implementations:
- OAuth token refresh (see: OAuth2RefreshMiddleware)
- Rate limiting (see: RateLimitMiddleware)
- Response caching (see: CacheMiddleware)
- Retry with backoff (see: RetryMiddleware)
- Logging with redaction (see: LoggingMiddleware)

The chain is assembled once per client with `compose`; the first middleware
in the list is the outermost one.
"""

from abc import ABC
from abc import abstractmethod
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Iterable
from typing import Optional
from typing import Protocol

import httpx

Options = dict[str, Any]
Handler = Callable[[httpx.Request, Options], Awaitable[httpx.Response]]
HandlerWrapper = Callable[[Handler], Handler]

RATE_LIMIT_REMAINING_HEADER = "X-Rate-Limit-Remaining"
REQUEST_COST_HEADER = "X-Request-Cost"
RATE_LIMIT_BODY_MARKER = "Rate Limit Exceeded"


class Middleware(Protocol):
    def get_name(self) -> str:
        """Stable, non-empty identifier used for diagnostics and ordering."""

    def configure(self, options: Options) -> None:
        """Merge `options` over the current configuration."""

    def __call__(self) -> HandlerWrapper:
        """
        Return the handler-wrapping function.

        The returned callable receives the next handler of the chain and
        returns the handler that performs this middleware's interception:
        `middleware()(next_handler)(request, options) -> response`.
        """


class AbstractMiddleware(ABC):
    """
    Base class for middleware with layered configuration.

    Configuration precedence (lowest to highest): `default_config()`, the
    previously merged config, the options passed to `configure()`.
    Unknown keys are kept as-is.
    """

    name = ""

    def __init__(self, config: Optional[Options] = None):
        self.config: Options = {}
        self.configure(config or {})

    def get_name(self) -> str:
        return self.name

    def configure(self, options: Options) -> None:
        self.config = {**self.default_config(), **self.config, **options}

    def default_config(self) -> Options:
        return {}

    def get_config(self, key: str, default: Any = None) -> Any:
        value = self.config.get(key)
        return default if value is None else value

    def __call__(self) -> HandlerWrapper:
        return self.wrap

    @abstractmethod
    def wrap(self, handler: Handler) -> Handler:
        """Wrap `handler` and return the intercepting handler."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.get_name()!r}>"


def compose(middlewares: Iterable[Middleware], terminal: Handler) -> Handler:
    """
    Build a single handler from an ordered list of middleware.

    The first middleware is the outermost: it sees the request first and the
    response last.
    """
    handler = terminal
    for middleware in reversed(list(middlewares)):
        handler = middleware()(handler)
    return handler


def response_from_error(error: BaseException) -> Optional[httpx.Response]:
    """Return the HTTP response wrapped by `error`, if there is one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response
    response = getattr(error, "response", None)
    if isinstance(response, httpx.Response):
        return response
    return None


def header_number(response: httpx.Response, name: str) -> Optional[float]:
    """Parse a numeric header; None when absent or malformed."""
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return float(value.strip())
    except ValueError:
        return None


def body_text(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        return ""


def is_canvas_rate_limit(response: Optional[httpx.Response]) -> bool:
    """
    Canvas reports throttling as a 403 with either an exhausted
    X-Rate-Limit-Remaining header or a "Rate Limit Exceeded" body.
    """
    if response is None or response.status_code != 403:
        return False
    if RATE_LIMIT_REMAINING_HEADER in response.headers:
        remaining = header_number(response, RATE_LIMIT_REMAINING_HEADER)
        return remaining is not None and remaining <= 0
    return RATE_LIMIT_BODY_MARKER in body_text(response)
