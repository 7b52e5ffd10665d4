"""
Response caching building blocks used by CacheMiddleware.

Adapters, key generation, TTL policy and response serialization are
interchangeable; the middleware only relies on their interfaces.
"""

from .adapters import AiocacheAdapter
from .adapters import CacheAdapter
from .adapters import FileSystemAdapter
from .adapters import InMemoryAdapter
from .adapters import pattern_to_regex
from .serializer import ResponseSerializer
from .strategies import CacheKeyGenerator
from .strategies import TtlStrategy

__all__ = [
    "CacheAdapter",
    "InMemoryAdapter",
    "FileSystemAdapter",
    "AiocacheAdapter",
    "ResponseSerializer",
    "CacheKeyGenerator",
    "TtlStrategy",
    "pattern_to_regex",
]
