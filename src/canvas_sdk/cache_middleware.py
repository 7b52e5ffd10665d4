"""
Response caching middleware for Canvas SDK.

Caches successful GET responses and invalidates related entries when a
mutating request (POST/PUT/PATCH/DELETE) hits the same resource. Caching is
opt-in (`enabled=False` by default).

Per-request options:
- cache=False: bypass the cache entirely
- cache_refresh=True: skip the lookup, fetch and overwrite the entry
- cache_ttl=<seconds>: override the TTL strategy
"""

import logging
import re

import httpx

from canvas_sdk.cache import CacheAdapter
from canvas_sdk.cache import CacheKeyGenerator
from canvas_sdk.cache import InMemoryAdapter
from canvas_sdk.cache import ResponseSerializer
from canvas_sdk.cache import TtlStrategy
from canvas_sdk.middleware import AbstractMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Options

logger = logging.getLogger("canvas_sdk.middleware.cache")

MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")

_RESOURCE_RE = re.compile(r"/api/v1/(\w+)/(\d+)")
_PARENT_COURSE_RE = re.compile(r"/courses/(\d+)/")


class CacheMiddleware(AbstractMiddleware):
    """
    Middleware caching Canvas API responses.

    Collaborators can be passed in the config (`adapter`, `key_generator`,
    `ttl_strategy`, `serializer`); defaults are an `InMemoryAdapter`, a
    `CacheKeyGenerator`, a `TtlStrategy` using `default_ttl` and a
    `ResponseSerializer`.
    """

    name = "cache"

    adapter: CacheAdapter
    key_generator: CacheKeyGenerator
    ttl_strategy: TtlStrategy
    serializer: ResponseSerializer

    def configure(self, options: Options) -> None:
        super().configure(options)
        self.adapter = (
            self.get_config("adapter") or getattr(self, "adapter", None) or InMemoryAdapter()
        )
        self.key_generator = self.get_config("key_generator") or CacheKeyGenerator()
        self.serializer = self.get_config("serializer") or ResponseSerializer()

        if self.get_config("ttl_strategy") is not None:
            self.ttl_strategy = self.get_config("ttl_strategy")
        elif "default_ttl" in options or not hasattr(self, "ttl_strategy"):
            self.ttl_strategy = TtlStrategy(self.get_config("default_ttl", 300))

    def default_config(self) -> Options:
        return {
            "enabled": False,
            "default_ttl": 300,
            "cache_get_only": True,
            "cache_success_only": True,
            "invalidate_on_mutation": True,
        }

    def wrap(self, handler: Handler) -> Handler:
        async def cache_handler(
            request: httpx.Request, options: Options
        ) -> httpx.Response:
            if not self.is_caching_enabled(options):
                return await handler(request, options)

            if self.get_config("cache_get_only") and request.method != "GET":
                if self.get_config("invalidate_on_mutation"):
                    await self.invalidate_on_mutation(request)
                return await handler(request, options)

            cache_key = self.key_generator.generate(request, options)

            if options.get("cache_refresh") is True:
                return await self._execute_and_cache(request, handler, options, cache_key)

            cached = await self.adapter.get(cache_key)
            if cached is not None:
                response = self.serializer.deserialize(cached)
                if response is not None:
                    logger.debug(f"Cache HIT for {cache_key}")
                    response.request = request
                    return response

            logger.debug(f"Cache MISS for {cache_key}")
            return await self._execute_and_cache(request, handler, options, cache_key)

        return cache_handler

    async def _execute_and_cache(
        self,
        request: httpx.Request,
        handler: Handler,
        options: Options,
        cache_key: str,
    ) -> httpx.Response:
        response = await handler(request, options)

        if self.should_cache_response(response):
            ttl = self.ttl_strategy.get_ttl(request, options)
            if ttl > 0:
                data = self.serializer.serialize(response)
                if data.get("cacheable"):
                    await self.adapter.set(cache_key, data, ttl)
                else:
                    logger.debug(f"Not caching {cache_key}: {data.get('reason')}")

        return response

    def is_caching_enabled(self, options: Options) -> bool:
        if options.get("cache") is False:
            return False
        return bool(self.get_config("enabled"))

    def should_cache_response(self, response: httpx.Response) -> bool:
        if not self.get_config("cache_success_only"):
            return True
        return 200 <= response.status_code < 300

    async def invalidate_on_mutation(self, request: httpx.Request) -> int:
        """Purge entries related to a mutated resource; returns how many went."""
        if request.method not in MUTATING_METHODS:
            return 0

        deleted = 0
        for pattern in self.invalidation_patterns(request.method, request.url.path):
            deleted += await self.adapter.delete_by_pattern(pattern)
        if deleted:
            logger.debug(
                f"Invalidated {deleted} cache entries after {request.method} {request.url.path}"
            )
        return deleted

    @staticmethod
    def invalidation_patterns(method: str, path: str) -> list[str]:
        match = _RESOURCE_RE.search(path)
        if not match:
            return []

        resource_type, resource_id = match.groups()
        patterns = [
            f"*:GET:/api/v1/{resource_type}*",
            f"*:GET:/api/v1/{resource_type}/{resource_id}*",
        ]

        if resource_type in ("courses", "users"):
            patterns.append(f"*:GET:/api/v1/{resource_type}/{resource_id}/*")
        elif resource_type in ("assignments", "modules", "pages"):
            course = _PARENT_COURSE_RE.search(path)
            if course:
                patterns.append(f"*:GET:/api/v1/courses/{course.group(1)}/*")

        return patterns

    async def get_statistics(self) -> dict[str, int]:
        return await self.adapter.get_stats()

    async def clear_cache(self) -> None:
        await self.adapter.clear()
