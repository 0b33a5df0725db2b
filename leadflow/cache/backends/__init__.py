from .base import CacheBackend
from .memory import InMemoryBackend
from .noop import NoopBackend
from .redis import RedisBackend, create_redis_client
from .upstash import UpstashCommandError, UpstashRestBackend

__all__ = [
    "CacheBackend",
    "InMemoryBackend",
    "NoopBackend",
    "RedisBackend",
    "UpstashCommandError",
    "UpstashRestBackend",
    "create_redis_client",
]
