"""Errors, result caching, cache statistics, configuration and request middleware for a SQL query server."""

__version__ = "0.1.0"

__all__ = [
    "cache",
    "cache_stats",
    "config",
    "errors",
    "middleware",
]