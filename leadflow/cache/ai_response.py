from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Callable

from leadflow.metrics import increment_cache_hit, increment_cache_miss, increment_cache_write

from .client import CacheClient

logger = logging.getLogger(__name__)

AI_PROMPT_PREFIX = "ai:prompt:"


def normalize_prompt(prompt: str | None) -> str:
    """Collapse every run of whitespace, blank lines included, into one space."""
    if not prompt or not isinstance(prompt, str):
        return ""
    return " ".join(prompt.split())


def hash_prompt(prompt: str | None) -> str:
    return hashlib.sha256(normalize_prompt(prompt).encode("utf-8")).hexdigest()


def cache_key(prompt: str | None) -> str:
    return f"{AI_PROMPT_PREFIX}{hash_prompt(prompt)}"


class AIResponseCache:
    """Content-addressed cache of model responses keyed by the normalized prompt.

    Prompts that differ only in whitespace share an entry on purpose.
    """

    def __init__(self, client: CacheClient, ttl: int = 86400, clock: Callable[[], float] = time.time) -> None:
        self.client = client
        self.ttl = ttl
        self._clock = clock
        self.hits = 0
        self.misses = 0
        self.writes = 0

    async def get_cached_response(self, prompt: str | None) -> dict[str, Any] | None:
        if not normalize_prompt(prompt):
            return None

        key = cache_key(prompt)
        raw = await self.client.get(key)
        if raw is None:
            self.misses += 1
            increment_cache_miss(tier="ai_response", scope="prompt")
            logger.debug("ai response cache miss for %s", key[len(AI_PROMPT_PREFIX) :][:8])
            return None

        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("dropping corrupted ai response cache entry %s", key)
            await self.client.delete(key)
            self.misses += 1
            return None
        if not isinstance(record, dict) or "response" not in record:
            logger.warning("dropping malformed ai response cache entry %s", key)
            await self.client.delete(key)
            self.misses += 1
            return None

        self.hits += 1
        increment_cache_hit(tier="ai_response", scope="prompt")
        return record

    async def cache_response(self, prompt: str | None, response: Any, metadata: dict[str, Any] | None = None) -> bool:
        if not normalize_prompt(prompt):
            return False

        digest = hash_prompt(prompt)
        record = {
            "response": response,
            "metadata": {
                **(metadata or {}),
                "cachedAt": int(self._clock() * 1000),
                "promptHashPrefix": digest[:16],
            },
        }
        try:
            serialized = json.dumps(record, separators=(",", ":"), default=str)
        except (TypeError, ValueError) as exc:
            logger.warning("ai response is not serializable, not caching: %s", exc)
            return False

        stored = await self.client.set(f"{AI_PROMPT_PREFIX}{digest}", serialized, ttl=self.ttl)
        if stored:
            self.writes += 1
            increment_cache_write(tier="ai_response", scope="prompt")
        return stored

    async def invalidate_prompt(self, prompt: str | None) -> bool:
        if not normalize_prompt(prompt):
            return False
        return await self.client.delete(cache_key(prompt))

    def get_stats(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "ttl": self.ttl,
            "prefix": AI_PROMPT_PREFIX,
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            "backend": self.client.backend_name,
        }
