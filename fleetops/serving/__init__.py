"""
Serving Module
"""
from .cache import init_redis, close_redis, get_redis, analytics_cache, invalidate_analytics

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "analytics_cache",
    "invalidate_analytics",
]
