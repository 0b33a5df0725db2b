from .ai_response import AIResponseCache, cache_key, hash_prompt, normalize_prompt
from .backends import CacheBackend, InMemoryBackend, NoopBackend, RedisBackend, UpstashRestBackend
from .client import CacheClient, build_cache_backend
from .key_builder import ResponseCacheKeyBuilder
from .memo import MemoCache, ProductCatalogCache, TemplateCache, compile_template
from .middleware import CACHE_STATUS_HEADER, CacheRule, ResponseCache, ResponseCacheMiddleware, render_json_body
from .query_cache import CachePolicy, count_with_cache, find_with_cache, get_with_cache, with_cache
from .sweeper import PeriodicTask
from .tags import CacheTagIndex, tag_key

__all__ = [
    "AIResponseCache",
    "CACHE_STATUS_HEADER",
    "CacheBackend",
    "CacheClient",
    "CachePolicy",
    "CacheRule",
    "CacheTagIndex",
    "InMemoryBackend",
    "MemoCache",
    "NoopBackend",
    "PeriodicTask",
    "ProductCatalogCache",
    "RedisBackend",
    "ResponseCache",
    "ResponseCacheKeyBuilder",
    "ResponseCacheMiddleware",
    "TemplateCache",
    "UpstashRestBackend",
    "build_cache_backend",
    "cache_key",
    "compile_template",
    "count_with_cache",
    "find_with_cache",
    "get_with_cache",
    "hash_prompt",
    "normalize_prompt",
    "render_json_body",
    "tag_key",
    "with_cache",
]
