"""
Serving Module
"""
from .cache import (
    CacheHit,
    InMemoryResultCache,
    RedisResultCache,
    ResultCache,
    build_result_cache,
)

__all__ = [
    "CacheHit",
    "InMemoryResultCache",
    "RedisResultCache",
    "ResultCache",
    "build_result_cache",
]
