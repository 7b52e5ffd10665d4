"""
Logging middleware for Canvas SDK.

This module provides LoggingMiddleware, a built-in middleware that logs
all HTTP requests, responses and errors with timing information, without
changing control flow.

Features:
- Per-request correlation id
- Request logging with method, URL, headers and (truncated) body
- Response logging with status, timing and Canvas rate-limit headers
- Error logging including the wrapped response, if any
- Redaction of sensitive headers and body fields

Every record carries its structured context in `record.http`.
"""

import json
import logging
import re
import time
import uuid
from typing import Any
from typing import Mapping
from typing import Optional

import httpx

from canvas_sdk.middleware import RATE_LIMIT_REMAINING_HEADER
from canvas_sdk.middleware import REQUEST_COST_HEADER
from canvas_sdk.middleware import AbstractMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Options
from canvas_sdk.middleware import body_text
from canvas_sdk.middleware import response_from_error

REDACTED = "***REDACTED***"

default_logger = logging.getLogger("canvas_sdk.middleware.logging")


def _level(value: Any) -> int:
    if isinstance(value, int):
        return value
    return logging.getLevelName(str(value).upper())


class LoggingMiddleware(AbstractMiddleware):
    """
    Middleware for logging HTTP traffic in CanvasClient.
    Uses standard Python logging; a custom logger can be injected.
    """

    name = "logging"

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        config: Optional[Options] = None,
    ):
        super().__init__(config)
        self.logger = logger or default_logger

    def default_config(self) -> Options:
        return {
            "enabled": True,
            "log_requests": True,
            "log_responses": True,
            "log_errors": True,
            "log_timing": True,
            "log_level": logging.INFO,
            "error_log_level": logging.ERROR,
            "sanitize_fields": ["password", "token", "api_key", "secret", "authorization"],
            "max_body_length": 1000,
        }

    def wrap(self, handler: Handler) -> Handler:
        async def logging_handler(
            request: httpx.Request, options: Options
        ) -> httpx.Response:
            if not self.get_config("enabled", True):
                return await handler(request, options)

            start = time.monotonic()
            request_id = f"req_{uuid.uuid4().hex[:13]}"

            if self.get_config("log_requests", True):
                self.log_request(request, request_id, options)

            try:
                response = await handler(request, options)
            except Exception as exc:
                if self.get_config("log_errors", True):
                    self.log_error(exc, request, request_id, time.monotonic() - start)
                raise

            if self.get_config("log_responses", True):
                self.log_response(response, request_id, time.monotonic() - start)
            return response

        return logging_handler

    def log_request(
        self, request: httpx.Request, request_id: str, options: Options
    ) -> None:
        context: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "uri": self.sanitize_url(request.url),
            "headers": self.sanitize_headers(request.headers),
        }

        body = _request_body(request)
        if body:
            max_length = self.get_config("max_body_length", 1000)
            sanitized = self.sanitize_body(body)
            if len(sanitized) > max_length:
                context["body"] = sanitized[:max_length] + "... (truncated)"
                context["body_length"] = len(body)
            else:
                context["body"] = sanitized

        if "rate_limit_bucket" in options:
            context["rate_limit_bucket"] = options["rate_limit_bucket"]

        self.logger.log(
            _level(self.get_config("log_level")),
            f"HTTP Request: {request.method} {context['uri']}",
            extra={"http": context},
        )

    def log_response(
        self, response: httpx.Response, request_id: str, elapsed: float
    ) -> None:
        context: dict[str, Any] = {
            "request_id": request_id,
            "status_code": response.status_code,
            "reason_phrase": response.reason_phrase,
            "headers": self.sanitize_headers(response.headers),
        }

        if self.get_config("log_timing", True):
            context["elapsed_time"] = f"{round(elapsed * 1000, 2)}ms"

        if RATE_LIMIT_REMAINING_HEADER in response.headers:
            context["rate_limit_remaining"] = response.headers[RATE_LIMIT_REMAINING_HEADER]
        if REQUEST_COST_HEADER in response.headers:
            context["request_cost"] = response.headers[REQUEST_COST_HEADER]

        is_error = response.status_code >= 400
        if is_error:
            body = self._truncate(body_text(response))
            if body:
                context["body"] = body

        level = self.get_config("error_log_level") if is_error else self.get_config("log_level")
        self.logger.log(
            _level(level),
            f"HTTP Response: {response.status_code} {response.reason_phrase}",
            extra={"http": context},
        )

    def log_error(
        self,
        error: BaseException,
        request: httpx.Request,
        request_id: str,
        elapsed: float,
    ) -> None:
        uri = self.sanitize_url(request.url)
        context: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "uri": uri,
            "error_type": type(error).__name__,
            # httpx puts the full URL in its error messages
            "error_message": str(error).replace(str(request.url), uri),
        }

        if self.get_config("log_timing", True):
            context["elapsed_time"] = f"{round(elapsed * 1000, 2)}ms"

        response = response_from_error(error)
        if response is not None:
            context["status_code"] = response.status_code
            context["headers"] = self.sanitize_headers(response.headers)
            body = self._truncate(body_text(response))
            if body:
                context["response_body"] = body

        self.logger.log(
            _level(self.get_config("error_log_level")),
            f"HTTP Error: {context['error_type']} - {context['error_message']}",
            extra={"http": context},
        )

    def sanitize_headers(self, headers: Mapping[str, str]) -> dict[str, str]:
        return {
            name: REDACTED if self._is_sensitive(name) else value
            for name, value in headers.items()
        }

    def sanitize_url(self, url: httpx.URL) -> str:
        if not url.query:
            return str(url)
        params = [
            (name, REDACTED if self._is_sensitive(name) else value)
            for name, value in url.params.multi_items()
        ]
        return str(url.copy_with(params=params))

    def sanitize_body(self, body: str) -> str:
        try:
            decoded = json.loads(body)
        except ValueError:
            decoded = None

        if isinstance(decoded, (dict, list)):
            return json.dumps(self.sanitize_data(decoded), indent=4)

        for field in self.get_config("sanitize_fields", []):
            pattern = re.compile(
                r"(" + re.escape(field) + r"\s*[=:]\s*)([^\s&,}\"']+)", re.IGNORECASE
            )
            body = pattern.sub(r"\g<1>" + REDACTED, body)
        return body

    def sanitize_data(self, data: Any) -> Any:
        """Recursively redact sensitive keys in dicts and lists."""
        if isinstance(data, dict):
            return {
                key: REDACTED if self._is_sensitive(str(key)) else self.sanitize_data(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [self.sanitize_data(item) for item in data]
        return data

    def _is_sensitive(self, name: str) -> bool:
        lowered = name.lower()
        return any(
            field.lower() in lowered for field in self.get_config("sanitize_fields", [])
        )

    def _truncate(self, body: str) -> str:
        max_length = self.get_config("max_body_length", 1000)
        if len(body) > max_length:
            return body[:max_length] + "... (truncated)"
        return body


def _request_body(request: httpx.Request) -> str:
    try:
        content = request.content
    except httpx.RequestNotRead:
        return ""
    return content.decode("utf-8", errors="replace")
