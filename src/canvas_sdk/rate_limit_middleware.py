"""
Rate limiting middleware for Canvas SDK.

Canvas meters API usage with a leaky bucket: every request costs units,
the bucket refills continuously and the server reports what is left in
`X-Rate-Limit-Remaining`. This middleware mirrors that accounting on the
client to smooth bursts and avoid being throttled.

Buckets live in a `BucketStore`. By default all middleware instances in the
process share one store, so independent clients talking to the same account
and host do not each assume a full quota.
"""

import asyncio
import hashlib
import logging
import math
import threading
import time
from dataclasses import dataclass
from dataclasses import replace
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Optional
from urllib.parse import urlsplit

import httpx

from canvas_sdk.exceptions import RateLimitExceededError
from canvas_sdk.exceptions import RateLimitWaitTooLongError
from canvas_sdk.middleware import RATE_LIMIT_REMAINING_HEADER
from canvas_sdk.middleware import REQUEST_COST_HEADER
from canvas_sdk.middleware import AbstractMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Options
from canvas_sdk.middleware import header_number
from canvas_sdk.middleware import is_canvas_rate_limit
from canvas_sdk.middleware import response_from_error

logger = logging.getLogger("canvas_sdk.middleware.rate_limit")


@dataclass
class Bucket:
    remaining: float
    cost: float = 0
    timestamp: float = 0.0


class BucketStore:
    """
    Thread-safe map of bucket key -> `Bucket`.

    Every access first leaks (refills) the bucket for the time elapsed since
    the previous access, so no background timer is needed. `remaining` is
    kept within `[0, bucket_size]`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._buckets: dict[str, Bucket] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str, bucket_size: float, leak_rate: float) -> Bucket:
        """Return a snapshot of the (refilled) bucket, creating it if needed."""
        with self._lock:
            return replace(self._leak(key, bucket_size, leak_rate))

    def consume(
        self, key: str, cost: float, bucket_size: float, leak_rate: float
    ) -> Bucket:
        with self._lock:
            bucket = self._leak(key, bucket_size, leak_rate)
            bucket.remaining = max(0, bucket.remaining - cost)
            bucket.cost = cost
            return replace(bucket)

    def refund(
        self, key: str, amount: float, bucket_size: float, leak_rate: float
    ) -> Bucket:
        with self._lock:
            bucket = self._leak(key, bucket_size, leak_rate)
            bucket.remaining = min(bucket_size, bucket.remaining + amount)
            return replace(bucket)

    def overwrite(
        self, key: str, remaining: float, bucket_size: float, leak_rate: float
    ) -> Bucket:
        """Replace `remaining` with a server-reported value."""
        with self._lock:
            bucket = self._leak(key, bucket_size, leak_rate)
            bucket.remaining = min(bucket_size, max(0, remaining))
            return replace(bucket)

    def set(self, key: str, bucket: Bucket) -> None:
        with self._lock:
            self._buckets[key] = replace(bucket)

    def peek(self, key: str) -> Optional[Bucket]:
        """Snapshot without refilling; None for unknown keys."""
        with self._lock:
            bucket = self._buckets.get(key)
            return replace(bucket) if bucket else None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._buckets)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)

    def _leak(self, key: str, bucket_size: float, leak_rate: float) -> Bucket:
        now = self._clock()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = Bucket(remaining=bucket_size, timestamp=now)
            self._buckets[key] = bucket
            return bucket

        elapsed = max(0.0, now - bucket.timestamp)
        leaked = elapsed * leak_rate
        if leaked > 0:
            bucket.remaining = min(bucket_size, bucket.remaining + leaked)
        bucket.timestamp = now
        return bucket


default_bucket_store = BucketStore()


def credential_fingerprint(credential: str) -> str:
    """First 8 hex chars of the credential's SHA-1; never the credential itself."""
    return hashlib.sha1(credential.encode("utf-8")).hexdigest()[:8]


class RateLimitMiddleware(AbstractMiddleware):
    """
    Client-side leaky-bucket rate limiter for the Canvas API.

    Args:
        config (dict | None): Overrides for `default_config()`.
        store (BucketStore | None): Bucket storage; the process-wide
            `default_bucket_store` when omitted.
        credential (callable | None): Returns the active credential (API key
            or OAuth token) used to fingerprint the bucket key.
        base_url (str | None): Fallback for the host when the request URL
            has none.
        sleep (callable | None): Awaitable sleep taking seconds.
    """

    name = "rate-limit"

    def __init__(
        self,
        config: Optional[Options] = None,
        store: Optional[BucketStore] = None,
        credential: Optional[Callable[[], Optional[str]]] = None,
        base_url: Optional[str] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        super().__init__(config)
        self.store = store or default_bucket_store
        self._credential = credential
        self._base_url = base_url
        self._sleep = sleep or asyncio.sleep

    def default_config(self) -> Options:
        return {
            "enabled": True,
            "bucket_size": 3000,  # Canvas default bucket size
            "leak_rate": 50,  # units refilled per second
            "initial_cost": 50,  # Canvas charges 50 units upfront
            "min_remaining": 100,  # start throttling below this
            "wait_on_limit": True,
            "max_wait_time": 60,  # seconds
        }

    def wrap(self, handler: Handler) -> Handler:
        async def rate_limit_handler(
            request: httpx.Request, options: Options
        ) -> httpx.Response:
            if not self.get_config("enabled", True):
                return await handler(request, options)

            bucket_key = self.make_bucket_key(request, options)

            delay = self.calculate_delay(bucket_key)
            if delay > 0:
                if not self.get_config("wait_on_limit", True):
                    raise RateLimitExceededError(
                        f"Rate limit would be exceeded. Would need to wait {delay} seconds.",
                        wait_time=delay,
                        request=request,
                    )

                max_wait = self.get_config("max_wait_time", 60)
                if delay > max_wait:
                    raise RateLimitWaitTooLongError(
                        f"Rate limit wait time ({delay}s) exceeds maximum ({max_wait}s).",
                        wait_time=delay,
                        max_wait_time=max_wait,
                        request=request,
                    )

                logger.info(f"Rate limit bucket {bucket_key} low, waiting {delay}s")
                await self._sleep(delay)

            initial_cost = self.get_config("initial_cost", 50)
            self._consume(bucket_key, initial_cost)

            try:
                response = await handler(request, options)
            except Exception as exc:
                if not is_canvas_rate_limit(response_from_error(exc)):
                    self._refund(bucket_key, initial_cost)
                raise

            self.update_bucket_from_response(bucket_key, response)
            return response

        return rate_limit_handler

    def make_bucket_key(self, request: httpx.Request, options: Options) -> str:
        """
        Bucket key: explicit `rate_limit_bucket` option, else
        `{host}_{fingerprint}`, else the bare host, else "default".
        """
        override = options.get("rate_limit_bucket")
        if isinstance(override, str) and override:
            return override

        host = request.url.host or ""
        if not host and self._base_url:
            host = urlsplit(self._base_url).hostname or ""
        if not host:
            return "default"

        credential = self._credential() if self._credential else None
        if credential:
            return f"{host}_{credential_fingerprint(credential)}"
        return host

    def calculate_delay(self, bucket_key: str) -> int:
        """Whole seconds to wait before `bucket_key` can serve one more request."""
        bucket = self.store.get(bucket_key, *self._bucket_params())
        needed = (
            self.get_config("min_remaining", 100)
            + self.get_config("initial_cost", 50)
        )
        if bucket.remaining >= needed:
            return 0
        return math.ceil((needed - bucket.remaining) / self.get_config("leak_rate", 50))

    def update_bucket_from_response(
        self, bucket_key: str, response: httpx.Response
    ) -> None:
        remaining = header_number(response, RATE_LIMIT_REMAINING_HEADER)
        if remaining is not None:
            self.store.overwrite(bucket_key, remaining, *self._bucket_params())

        actual_cost = header_number(response, REQUEST_COST_HEADER)
        if actual_cost is not None:
            initial_cost = self.get_config("initial_cost", 50)
            if actual_cost < initial_cost:
                self._refund(bucket_key, initial_cost - actual_cost)
            elif actual_cost > initial_cost:
                self._consume(bucket_key, actual_cost - initial_cost)

    def bucket(self, bucket_key: str) -> Bucket:
        """Current (refilled) state of a bucket."""
        return self.store.get(bucket_key, *self._bucket_params())

    def reset_buckets(self, bucket_key: Optional[str] = None) -> None:
        """Drop one bucket, or all of them when `bucket_key` is None."""
        self.store.reset(bucket_key)

    def _consume(self, bucket_key: str, cost: float) -> None:
        self.store.consume(bucket_key, cost, *self._bucket_params())

    def _refund(self, bucket_key: str, amount: float) -> None:
        self.store.refund(bucket_key, amount, *self._bucket_params())

    def _bucket_params(self) -> tuple[float, float]:
        return self.get_config("bucket_size", 3000), self.get_config("leak_rate", 50)
