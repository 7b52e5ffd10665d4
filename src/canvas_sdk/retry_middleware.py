"""
Retry middleware for Canvas SDK.

Retries transient failures with exponential backoff. Canvas signals
throttling with HTTP 403, so a 403 is only retried when it carries the
Canvas rate-limit markers; any other 403 is a genuine authorization failure
and is surfaced immediately.

The retry loop itself is driven by tenacity.
"""

import asyncio
import logging
import random
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Optional

import httpx
from tenacity import AsyncRetrying
from tenacity import RetryCallState

from canvas_sdk.middleware import AbstractMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Options
from canvas_sdk.middleware import is_canvas_rate_limit
from canvas_sdk.middleware import response_from_error

logger = logging.getLogger("canvas_sdk.middleware.retry")


class RetryMiddleware(AbstractMiddleware):
    """
    Middleware that retries failed requests with exponential backoff.

    `max_attempts` is the total number of attempts for one logical request,
    so at most `max_attempts - 1` retries are made. Delays are configured in
    milliseconds.

    Args:
        config (dict | None): Overrides for `default_config()`.
        sleep (callable | None): Awaitable sleep taking seconds; defaults to
            `asyncio.sleep`.
    """

    name = "retry"

    def __init__(
        self,
        config: Optional[Options] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        super().__init__(config)
        self._sleep = sleep or asyncio.sleep

    def default_config(self) -> Options:
        return {
            "max_attempts": 3,
            "delay": 1000,  # initial delay, ms
            "multiplier": 2,
            "max_delay": 16000,  # ms
            "jitter": True,
            "retry_on_status": [500, 502, 503, 504, 403],
            "retry_on_timeout": True,
        }

    def wrap(self, handler: Handler) -> Handler:
        async def retry_handler(
            request: httpx.Request, options: Options
        ) -> httpx.Response:
            first_attempt = int(options.get("retry_attempt") or 0)
            await _buffer_body(request)

            def attempt_index(retry_state: RetryCallState) -> int:
                return first_attempt + retry_state.attempt_number - 1

            def retry_outcome(retry_state: RetryCallState) -> bool:
                outcome = retry_state.outcome
                if outcome.failed:
                    return self.should_retry(
                        attempt_index(retry_state), error=outcome.exception()
                    )
                return self.should_retry(
                    attempt_index(retry_state), response=outcome.result()
                )

            # should_retry enforces max_attempts, so no stop condition is needed
            retrying = AsyncRetrying(
                wait=lambda state: self.calculate_delay(attempt_index(state) + 1)
                / 1000,
                retry=retry_outcome,
                sleep=self._sleep,
                before_sleep=self._log_retry,
            )

            response = None
            async for attempt in retrying:
                index = attempt_index(attempt.retry_state)
                if index > first_attempt:
                    _rewind_body(request)
                with attempt:
                    response = await handler(
                        request, {**options, "retry_attempt": index}
                    )
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(response)
            return response

        return retry_handler

    def should_retry(
        self,
        attempt: int,
        response: Optional[httpx.Response] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """
        Decide whether attempt number `attempt` (0-based) may be followed by
        another one.
        """
        if attempt + 1 >= self.get_config("max_attempts", 3):
            return False

        if response is not None:
            if response.status_code == 403:
                return 403 in self._retry_statuses() and is_canvas_rate_limit(
                    response
                )
            return response.status_code in self._retry_statuses()

        if error is None:
            return False

        if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
            return bool(self.get_config("retry_on_timeout", True))

        wrapped = response_from_error(error)
        if wrapped is not None:
            return self.should_retry(attempt, response=wrapped)
        return False

    def calculate_delay(self, attempt: int) -> int:
        """
        Delay in milliseconds before retry number `attempt` (1-based).
        """
        delay = self.get_config("delay", 1000)
        multiplier = self.get_config("multiplier", 2)
        max_delay = self.get_config("max_delay", 16000)

        calculated = min(delay * multiplier ** (attempt - 1), max_delay)

        if self.get_config("jitter", True):
            calculated += calculated * (random.randint(0, 25) / 100)

        return int(calculated)

    def _retry_statuses(self) -> set[int]:
        return {int(status) for status in self.get_config("retry_on_status", [])}

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome.failed:
            reason = repr(outcome.exception())
        else:
            reason = f"status {outcome.result().status_code}"
        logger.warning(
            f"Retrying request (attempt {retry_state.attempt_number + 1}) "
            f"in {retry_state.upcoming_sleep:.3f}s after {reason}"
        )


async def _buffer_body(request: httpx.Request) -> None:
    """Read a streaming body once so that every attempt can resend it."""
    if isinstance(request.stream, httpx.ByteStream):
        return
    if isinstance(request.stream, httpx.AsyncByteStream):
        await request.aread()
    else:
        request.read()


def _rewind_body(request: httpx.Request) -> None:
    """Re-stream the buffered body from its start."""
    try:
        content = request.content
    except httpx.RequestNotRead:
        return
    request.stream = httpx.ByteStream(content)
