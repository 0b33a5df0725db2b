from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from leadflow.cache import CacheClient, InMemoryBackend, NoopBackend, RedisBackend, UpstashRestBackend
from leadflow.cache.client import build_cache_backend
from leadflow.config import Settings


class StalledBackend(InMemoryBackend):
    name = "stalled"

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(5)
        return "late"


@pytest.mark.asyncio
async def test_set_then_get_round_trip_and_expiry(cache_client, clock):
    assert await cache_client.set("greeting", "hello", ttl=10) is True
    assert await cache_client.get("greeting") == "hello"

    await clock.advance(11)
    assert await cache_client.get("greeting") is None


@pytest.mark.asyncio
async def test_key_value_operations(cache_client):
    assert await cache_client.mset({"a": "1", "b": "2"}) is True
    assert await cache_client.mget(["a", "b", "missing"]) == ["1", "2", None]
    assert await cache_client.exists("a") is True
    assert await cache_client.incr("counter") == 1
    assert await cache_client.incr("counter") == 2
    assert await cache_client.expire("counter", 60) is True
    assert await cache_client.delete("a") is True
    assert await cache_client.delete("a") is False
    assert await cache_client.delete_many(["b", "counter"]) == 2


@pytest.mark.asyncio
async def test_backend_errors_fail_open(broken_backend):
    backend = broken_backend
    client = CacheClient(backend)

    assert await client.get("k") is None
    assert await client.set("k", "v", ttl=5) is False
    assert await client.delete("k") is False
    assert await client.delete_many(["k"]) is None
    assert await client.exists("k") is False
    assert await client.mget(["a", "b"]) == [None, None]
    assert await client.mset({"a": "1"}) is False
    assert await client.incr("k") is None
    assert await client.expire("k", 5) is False
    assert await client.ping() is False
    assert backend.calls == 10


@pytest.mark.asyncio
async def test_stalled_backend_times_out_as_miss():
    client = CacheClient(StalledBackend(), timeout=0.01)
    assert await client.get("k") is None


@pytest.mark.asyncio
async def test_noop_backend_is_disabled():
    client = CacheClient(NoopBackend())
    assert client.enabled is False
    assert await client.set("k", "v") is False
    assert await client.get("k") is None
    assert await client.ping() is False
    assert await client.incr("counter") is None
    assert await client.delete("k") is False


@pytest.mark.asyncio
async def test_redis_backend_passes_ttl(fake_redis):
    redis = fake_redis
    client = CacheClient(RedisBackend(redis))

    assert await client.set("k", "v", ttl=30) is True
    assert redis.ttls["k"] == 30
    assert await client.get("k") == "v"
    await client.close()
    assert redis.closed is True


@pytest.mark.asyncio
async def test_upstash_backend_sends_commands_as_json_arrays():
    seen: list[list[str]] = []
    store: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token-1"
        command = json.loads(request.content)
        seen.append(command)
        if command[0] == "SET":
            store[command[1]] = command[2]
            return httpx.Response(200, json={"result": "OK"})
        if command[0] == "GET":
            return httpx.Response(200, json={"result": store.get(command[1])})
        return httpx.Response(200, json={"error": "ERR unknown command"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = CacheClient(UpstashRestBackend("https://cache.example.com", "token-1", http_client=http_client))

    assert await client.set("k", "v", ttl=60) is True
    assert await client.get("k") == "v"
    assert await client.incr("k") is None
    assert seen[0] == ["SET", "k", "v", "EX", "60"]
    await http_client.aclose()


def test_backend_selection_prefers_rest_then_tcp_then_noop():
    rest = Settings(
        upstash_redis_rest_url="https://cache.example.com",
        upstash_redis_rest_token="t",
        redis_url="redis://localhost:6379",
    )
    tcp = Settings(upstash_redis_rest_url=None, upstash_redis_rest_token=None, redis_url="redis://localhost:6379")
    none = Settings(upstash_redis_rest_url=None, upstash_redis_rest_token=None, redis_url=None, use_memory_cache=False)
    memory = Settings(upstash_redis_rest_url=None, upstash_redis_rest_token=None, redis_url=None, use_memory_cache=True)

    assert isinstance(build_cache_backend(rest), UpstashRestBackend)
    assert isinstance(build_cache_backend(tcp), RedisBackend)
    assert isinstance(build_cache_backend(none), NoopBackend)
    assert isinstance(build_cache_backend(memory), InMemoryBackend)
