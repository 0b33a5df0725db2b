from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from pydantic import TypeAdapter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import compile_path

from leadflow.config import CacheRuleConfig
from leadflow.metrics import increment_cache_hit, increment_cache_miss, increment_cache_write

from .client import CacheClient
from .key_builder import ResponseCacheKeyBuilder
from .tags import CacheTagIndex

logger = logging.getLogger(__name__)

CACHE_STATUS_HEADER = "X-Cache"


@dataclass
class CacheRule:
    path: str
    ttl: int = 300
    tags: tuple[str, ...] = ()
    path_regex: re.Pattern[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.tags = tuple(self.tags)
        self.path_regex, _, _ = compile_path(self.path)

    @classmethod
    def from_config(cls, config: CacheRuleConfig) -> CacheRule:
        return cls(path=config.path, ttl=config.ttl, tags=tuple(config.tags))

    def matches(self, path: str) -> bool:
        return self.path_regex.match(path) is not None


_PAYLOAD_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def render_json_body(payload: Any) -> str:
    """Serialize ``payload`` exactly as a route annotated to return it would.

    Routes return ``dict[str, Any]``, which FastAPI dumps through pydantic in
    JSON mode (UTC datetimes end in ``Z``) before rendering the response.
    """
    content = _PAYLOAD_ADAPTER.dump_python(payload, mode="json")
    return JSONResponse(content=content).body.decode("utf-8")


class ResponseCache:
    """Stores successful JSON GET responses in the shared cache, tagged per route."""

    def __init__(
        self,
        client: CacheClient,
        tag_index: CacheTagIndex,
        rules: Iterable[CacheRule],
        key_builder: ResponseCacheKeyBuilder | None = None,
    ) -> None:
        self.client = client
        self.tag_index = tag_index
        self.rules = list(rules)
        self.key_builder = key_builder if key_builder is not None else ResponseCacheKeyBuilder()

    @property
    def enabled(self) -> bool:
        return self.client.enabled

    @property
    def max_ttl(self) -> int:
        """Upper bound on how stale an entry orphaned by a tag race can get."""
        return max((rule.ttl for rule in self.rules), default=0)

    def match(self, path: str) -> CacheRule | None:
        for rule in self.rules:
            if rule.matches(path):
                return rule
        return None

    def build_key(
        self,
        path: str,
        query: Mapping[str, Any] | Iterable[tuple[str, str]] | None = None,
        identity: str | None = None,
        method: str = "GET",
    ) -> str:
        return self.key_builder.build_key(method, path, query, identity)

    async def lookup(self, key: str) -> str | None:
        body = await self.client.get(key)
        if body is None:
            return None
        try:
            json.loads(body)
        except ValueError:
            logger.warning("dropping corrupted cached response %s", key)
            await self.client.delete(key)
            return None
        return body

    async def store(self, key: str, body: str, rule: CacheRule) -> bool:
        if not await self.client.set(key, body, ttl=rule.ttl):
            return False
        if rule.tags:
            await self.tag_index.tag(key, rule.tags)
        increment_cache_write(tier="response", scope=rule.path)
        return True

    async def store_payload(
        self,
        path: str,
        payload: Any,
        *,
        query: Mapping[str, Any] | None = None,
        identity: str | None = None,
    ) -> bool:
        """Pre-populate the entry a GET on ``path`` would produce."""
        rule = self.match(path)
        if rule is None:
            logger.debug("no response cache rule for %s", path)
            return False
        return await self.store(self.build_key(path, query, identity), render_json_body(payload), rule)

    async def invalidate(self, tags: str | Iterable[str]) -> int:
        return await self.tag_index.invalidate_by_tag(tags)


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response_cache: ResponseCache | None = getattr(request.app.state, "response_cache", None)
        if response_cache is None or not response_cache.enabled or request.method.upper() != "GET":
            return await call_next(request)

        path = request.url.path
        rule = response_cache.match(path)
        if rule is None:
            return await call_next(request)

        identity = getattr(request.state, "identity", None)
        cache_key = response_cache.build_key(path, request.query_params.multi_items(), identity)

        cached_body = await response_cache.lookup(cache_key)
        if cached_body is not None:
            increment_cache_hit(tier="response", scope=rule.path)
            logger.debug("response cache hit %s", cache_key)
            return Response(
                content=cached_body,
                status_code=200,
                media_type="application/json",
                headers={CACHE_STATUS_HEADER: "HIT"},
            )

        increment_cache_miss(tier="response", scope=rule.path)
        response = await call_next(request)

        if response.status_code != 200 or not self._is_json(response):
            response.headers[CACHE_STATUS_HEADER] = "MISS"
            return response

        response, body = await self._materialize_response(response)
        response.headers[CACHE_STATUS_HEADER] = "MISS"
        if body is not None:
            await response_cache.store(cache_key, body, rule)
        return response

    def _is_json(self, response: Response) -> bool:
        return response.headers.get("content-type", "").startswith("application/json")

    async def _materialize_response(self, response: Response) -> tuple[Response, str | None]:
        body = getattr(response, "body", None)
        if body is None:
            body_iterator = getattr(response, "body_iterator", None)
            if body_iterator is None:
                return response, None
            chunks = [chunk async for chunk in body_iterator]
            body = b"".join(chunk if isinstance(chunk, bytes) else str(chunk).encode("utf-8") for chunk in chunks)
            response = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
                background=response.background,
            )

        try:
            text = body.decode("utf-8")
            json.loads(text)
        except ValueError:
            return response, None
        return response, text
