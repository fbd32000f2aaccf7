"""In-memory TTL cache shared by the validation service and the sync job."""

from .memory_cache import CacheEntry, MemoryCache

__all__ = ["CacheEntry", "MemoryCache"]
