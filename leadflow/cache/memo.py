from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable

from leadflow.metrics import increment_cache_hit, increment_cache_miss

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")


@dataclass
class MemoEntry:
    data: Any
    expires_at: float


class MemoCache:
    """Process-local TTL map. Expiry is checked lazily on ``get``; ``cleanup`` sweeps the rest.

    Instances are not shared across processes or server replicas, so each
    replica may serve its own copy for up to ``ttl`` seconds after a change.
    """

    name = "memo"
    key_prefix = "memo:"

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, MemoEntry] = {}

    def _valid(self, entry: MemoEntry | None) -> bool:
        return entry is not None and self._clock() < entry.expires_at

    def _get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if not self._valid(entry):
            if entry is not None:
                del self._entries[key]
            increment_cache_miss(tier=self.name, scope="local")
            return None
        increment_cache_hit(tier=self.name, scope="local")
        logger.debug("%s cache hit for %s", self.name, key)
        return entry.data

    def _set(self, key: str, data: Any) -> None:
        self._entries[key] = MemoEntry(data=data, expires_at=self._clock() + self.ttl)

    def _drop(self, predicate: Callable[[str], bool]) -> int:
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def cleanup(self) -> int:
        now = self._clock()
        removed = self._drop(lambda key: now >= self._entries[key].expires_at)
        if removed:
            logger.info("%s cache cleaned up %d expired entries", self.name, removed)
        return removed

    def clear(self) -> int:
        removed = self._drop(lambda key: key.startswith(self.key_prefix))
        logger.info("%s cache cleared (%d entries)", self.name, removed)
        return removed

    def get_stats(self) -> dict[str, int]:
        valid = sum(1 for entry in self._entries.values() if self._valid(entry))
        return {
            "total_entries": len(self._entries),
            "valid_entries": valid,
            "expired_entries": len(self._entries) - valid,
        }

    def __len__(self) -> int:
        return len(self._entries)


class ProductCatalogCache(MemoCache):
    name = "product_catalog"
    key_prefix = "product:catalog:"

    def __init__(self, ttl: float = 300, clock: Callable[[], float] = time.time) -> None:
        super().__init__(ttl=ttl, clock=clock)

    def cache_key(self, user_id: str | None = None) -> str:
        return f"{self.key_prefix}{user_id or 'global'}"

    def get(self, user_id: str | None = None) -> Any | None:
        return self._get(self.cache_key(user_id))

    def set(self, catalog: Any, user_id: str | None = None) -> None:
        self._set(self.cache_key(user_id), catalog)
        logger.debug("cached product catalog for %s", self.cache_key(user_id))

    def invalidate(self, user_id: str | None = None) -> int:
        if user_id is None:
            removed = self._drop(lambda key: key.startswith(self.key_prefix))
            logger.info("invalidated all product catalog entries (%d)", removed)
            return removed
        return self._drop(lambda key: key == self.cache_key(user_id))

    def get_stats(self) -> dict[str, int]:
        stats = super().get_stats()
        stats["memory_usage"] = sum(
            len(json.dumps(entry.data, default=str)) for entry in self._entries.values() if self._valid(entry)
        )
        return stats


def compile_template(content: str, variables: dict[str, Any] | None = None) -> str:
    """Substitute ``{{name}}`` placeholders; unknown placeholders are left in place."""
    variables = variables or {}

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, content)


class TemplateCache(MemoCache):
    name = "template"
    key_prefix = "template:compiled:"

    def __init__(self, ttl: float = 3600, clock: Callable[[], float] = time.time) -> None:
        super().__init__(ttl=ttl, clock=clock)
        self.compilations = 0

    @staticmethod
    def template_hash(template_id: str, content: str, variables: dict[str, Any] | None = None) -> str:
        material = "{}:{}:{}".format(
            template_id,
            json.dumps(content, ensure_ascii=False),
            json.dumps(variables or {}, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str),
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]

    def cache_key(self, template_id: str, content: str, variables: dict[str, Any] | None = None) -> str:
        return f"{self.key_prefix}{template_id}:{self.template_hash(template_id, content, variables)}"

    def get_compiled(self, template_id: str, content: str, variables: dict[str, Any] | None = None) -> str:
        key = self.cache_key(template_id, content, variables)
        compiled = self._get(key)
        if compiled is not None:
            return compiled

        compiled = compile_template(content, variables)
        self.compilations += 1
        self._set(key, compiled)
        return compiled

    def invalidate(self, template_id: str | None = None) -> int:
        prefix = self.key_prefix if template_id is None else f"{self.key_prefix}{template_id}:"
        removed = self._drop(lambda key: key.startswith(prefix))
        logger.info("invalidated %d compiled templates for %s", removed, template_id or "all templates")
        return removed
