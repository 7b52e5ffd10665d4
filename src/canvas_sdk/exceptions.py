"""
Custom exceptions for the Canvas SDK.
Provides meaningful error classes for client consumers.
"""

from typing import Any, Optional

import httpx


class CanvasAPIError(Exception):
    """
    Base exception for all SDK-level API failures.

    Args:
        message (str): Short explanation of the error.
        details (Any | None): Optional structured details (e.g., response body).
        status_code (int | None): HTTP status of the failed response, if any.
        response (httpx.Response | None): The failed response, if any.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
        response: Optional[httpx.Response] = None,
    ):
        super().__init__(message)
        self.details = details
        self.status_code = status_code
        self.response = response


class RateLimitExceededError(CanvasAPIError):
    """
    Raised locally when the client-side bucket cannot serve a request
    without waiting and waiting is disabled.

    Carries a synthesized 429 response and the wait time (seconds) that
    would have been needed.
    """

    def __init__(
        self,
        message: str,
        wait_time: int,
        request: Optional[httpx.Request] = None,
    ):
        response = httpx.Response(429, text=message, request=request)
        super().__init__(message, status_code=429, response=response)
        self.wait_time = wait_time


class RateLimitWaitTooLongError(RateLimitExceededError):
    """Raised when the required wait exceeds the configured ``max_wait_time``."""

    def __init__(
        self,
        message: str,
        wait_time: int,
        max_wait_time: float,
        request: Optional[httpx.Request] = None,
    ):
        super().__init__(message, wait_time=wait_time, request=request)
        self.max_wait_time = max_wait_time


class AuthError(CanvasAPIError):
    """Authentication problem (missing credentials, failed refresh)."""


class MissingCredentialsError(AuthError):
    """No API key / OAuth credentials are configured."""


class OAuthRefreshError(AuthError):
    """The OAuth refresh-token grant failed."""
