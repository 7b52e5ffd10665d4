"""
Canvas SDK - Async-first SDK for the Canvas LMS REST API.

This SDK provides:
- Async client for the Canvas API
- Synchronous wrapper for sync operations
- Middleware pipeline: OAuth refresh, rate limiting, caching, retry, logging
- Multiple HTTP transport support
- Token management with caching
"""

from .auth import AuthManager
from .cache_middleware import CacheMiddleware
from .client import CanvasClient
from .client import build_middleware
from .client_sync import CanvasClientSync
from .config import CanvasSettings
from .exceptions import AuthError
from .exceptions import CanvasAPIError
from .exceptions import MissingCredentialsError
from .exceptions import OAuthRefreshError
from .exceptions import RateLimitExceededError
from .exceptions import RateLimitWaitTooLongError
from .logging_middleware import LoggingMiddleware
from .middleware import AbstractMiddleware
from .middleware import Middleware
from .middleware import compose
from .oauth_middleware import OAuth2RefreshMiddleware
from .rate_limit_middleware import RateLimitMiddleware
from .retry_middleware import RetryMiddleware
from .token_store import FileTokenStore
from .token_store import InMemoryTokenStore
from .token_store import TokenStore

__version__ = "1.0.0"

__all__ = [
    "CanvasClient",
    "CanvasClientSync",
    "CanvasSettings",
    "build_middleware",
    "AuthManager",
    "AuthError",
    "CanvasAPIError",
    "MissingCredentialsError",
    "OAuthRefreshError",
    "RateLimitExceededError",
    "RateLimitWaitTooLongError",
    "Middleware",
    "AbstractMiddleware",
    "compose",
    "OAuth2RefreshMiddleware",
    "RateLimitMiddleware",
    "CacheMiddleware",
    "RetryMiddleware",
    "LoggingMiddleware",
    "TokenStore",
    "FileTokenStore",
    "InMemoryTokenStore",
]
