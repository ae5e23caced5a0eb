"""
Cache Module

In-memory response cache with TTL expiry, capacity eviction, embedding
and RAG sub-caches, and an optional best-effort disk tier.
"""

from .response_cache import (
    EMBEDDING_TTL_MS,
    CacheEntry,
    CacheWriteResult,
    ResponseCache,
    canonical_json,
    hash_text,
)

__all__ = [
    "EMBEDDING_TTL_MS",
    "CacheEntry",
    "CacheWriteResult",
    "ResponseCache",
    "canonical_json",
    "hash_text",
]
