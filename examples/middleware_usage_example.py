"""
Example usage of the middleware pipeline in Canvas SDK.

This example demonstrates how to customise the default middleware chain:
a shared rate-limit bucket per credential, response caching with a custom
TTL rule, and retry/logging tuned per client.
"""

import asyncio
import logging

from canvas_sdk import CanvasClient
from canvas_sdk import CanvasSettings
from canvas_sdk import build_middleware
from canvas_sdk.cache import InMemoryAdapter
from canvas_sdk.cache import TtlStrategy

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def demonstrate_middleware():
    """
    Build a client whose cache is enabled and tuned for course listings.
    """

    settings = CanvasSettings(
        base_url="https://school.instructure.com",
        api_key="your-api-key",
        cache_enabled=True,
    )

    client = CanvasClient(settings)

    ttl_strategy = TtlStrategy(default_ttl=120)
    ttl_strategy.add_rule(r"/courses/\d+/modules", 1800)

    cache = client.middleware("cache")
    cache.configure({"adapter": InMemoryAdapter(max_entries=500), "ttl_strategy": ttl_strategy})

    try:
        # First call goes to Canvas, second one is served from the cache
        modules = await client.get_json("courses/42/modules")
        modules_again = await client.get_json("courses/42/modules")
        logger.info(f"Fetched {len(modules)} modules, cached copy has {len(modules_again)}")

        # Force a fresh copy
        await client.get("courses/42/modules", options={"cache_refresh": True})

        # Mutations invalidate cached course data
        await client.put("courses/42", json={"course": {"name": "Renamed"}})

        # Requests can be steered into a dedicated rate-limit bucket
        await client.get("users/self", options={"rate_limit_bucket": "reporting"})

        logger.info(f"Cache statistics: {await cache.get_statistics()}")
    finally:
        await client.aclose()


async def demonstrate_custom_chain():
    """
    Build a chain by hand: the default chain minus caching, with stricter retry.
    """

    settings = CanvasSettings(
        base_url="https://school.instructure.com",
        api_key="your-api-key",
    )
    client = CanvasClient(settings)
    middlewares = [m for m in build_middleware(settings, client.auth) if m.get_name() != "cache"]
    for middleware in middlewares:
        if middleware.get_name() == "retry":
            middleware.configure({"max_attempts": 5, "retry_on_status": [502, 503, 504]})

    async with CanvasClient(settings, middlewares=middlewares, auth=client.auth) as custom:
        profile = await custom.get_json("users/self/profile")
        logger.info(f"Hello {profile.get('name')}")
    await client.aclose()


if __name__ == "__main__":
    asyncio.run(demonstrate_middleware())
    asyncio.run(demonstrate_custom_chain())
