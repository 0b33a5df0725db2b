from __future__ import annotations

import json
import logging
from typing import Iterable

from leadflow.metrics import increment_tag_invalidation

from .client import CacheClient

logger = logging.getLogger(__name__)

TAG_KEY_PREFIX = "cache:tag:"


def tag_key(tag: str) -> str:
    return f"{TAG_KEY_PREFIX}{tag}"


def _as_list(tags: str | Iterable[str]) -> list[str]:
    if isinstance(tags, str):
        return [tags]
    return list(tags)


class CacheTagIndex:
    """Maps a tag to the cache keys written under it, stored as a JSON array.

    Updates are read-modify-write without locking. A ``tag()`` racing an
    ``invalidate_by_tag()`` can leave a key that no tag lists; such a key
    still expires with its own TTL, so it is never staler than the longest
    response TTL configured for the routes that write it.
    """

    def __init__(self, client: CacheClient, tag_ttl: int = 86400) -> None:
        self.client = client
        self.tag_ttl = tag_ttl

    async def _read(self, tag: str) -> list[str] | None:
        raw = await self.client.get(tag_key(tag))
        if raw is None:
            return None
        try:
            keys = json.loads(raw)
        except ValueError:
            logger.warning("discarding corrupted tag record for %s", tag)
            await self.client.delete(tag_key(tag))
            return None
        if not isinstance(keys, list):
            logger.warning("discarding malformed tag record for %s", tag)
            await self.client.delete(tag_key(tag))
            return None
        return [str(key) for key in keys]

    async def tag(self, key: str, tags: str | Iterable[str]) -> bool:
        if not self.client.enabled:
            return False

        ok = True
        for tag in _as_list(tags):
            members = await self._read(tag) or []
            if key not in members:
                members.append(key)
            ok = await self.client.set(tag_key(tag), json.dumps(members), ttl=self.tag_ttl) and ok
        logger.debug("tagged %s with %s", key, tags)
        return ok

    async def invalidate_by_tag(self, tags: str | Iterable[str]) -> int:
        """Delete every key listed under ``tags``; returns how many keys were listed."""
        if not self.client.enabled:
            return 0

        total = 0
        for tag in _as_list(tags):
            members = await self._read(tag)
            if members is None:
                continue
            if members:
                await self.client.delete_many(members)
            await self.client.delete(tag_key(tag))
            total += len(members)
            increment_tag_invalidation(tag=tag, count=len(members))
            logger.info("invalidated %d keys for tag %s", len(members), tag)
        return total

    async def untag(self, key: str, tags: str | Iterable[str]) -> bool:
        if not self.client.enabled:
            return False

        for tag in _as_list(tags):
            members = await self._read(tag)
            if not members or key not in members:
                continue
            members.remove(key)
            if members:
                await self.client.set(tag_key(tag), json.dumps(members), ttl=self.tag_ttl)
            else:
                await self.client.delete(tag_key(tag))
        return True

    async def get_keys_by_tag(self, tag: str) -> list[str]:
        return await self._read(tag) or []
