from __future__ import annotations

import pytest

from leadflow.cache import AIResponseCache, cache_key, hash_prompt, normalize_prompt


def test_prompts_differing_only_in_whitespace_share_a_key():
    assert normalize_prompt("  score\n\n this   lead\t") == "score this lead"
    assert cache_key("score this lead") == cache_key("score \n this\tlead  ")
    assert cache_key("score this lead") == f"ai:prompt:{hash_prompt('score this lead')}"
    assert cache_key("a") != cache_key("b")


@pytest.mark.asyncio
async def test_cache_response_round_trip_with_metadata(cache_client, clock):
    cache = AIResponseCache(cache_client, ttl=86400, clock=clock.time)

    assert await cache.cache_response("score this lead", '{"leadScore": 80}', {"model": "m"}) is True
    record = await cache.get_cached_response("score   this lead")

    assert record["response"] == '{"leadScore": 80}'
    assert record["metadata"]["model"] == "m"
    assert record["metadata"]["cachedAt"] == int(clock.time() * 1000)
    assert record["metadata"]["promptHashPrefix"] == hash_prompt("score this lead")[:16]
    assert cache.get_stats()["hits"] == 1


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(cache_client, clock):
    cache = AIResponseCache(cache_client, ttl=60, clock=clock.time)
    await cache.cache_response("p", "r")
    await clock.advance(61)
    assert await cache.get_cached_response("p") is None


@pytest.mark.asyncio
async def test_corrupted_entry_is_deleted(cache_client):
    cache = AIResponseCache(cache_client)
    await cache_client.set(cache_key("p"), "not json")

    assert await cache.get_cached_response("p") is None
    assert await cache_client.exists(cache_key("p")) is False
    assert cache.get_stats()["misses"] == 1


@pytest.mark.asyncio
async def test_empty_prompts_are_never_cached(cache_client):
    cache = AIResponseCache(cache_client)
    assert await cache.cache_response("   ", "r") is False
    assert await cache.get_cached_response(None) is None


@pytest.mark.asyncio
async def test_invalidate_prompt(cache_client):
    cache = AIResponseCache(cache_client)
    await cache.cache_response("p", "r")
    assert await cache.invalidate_prompt(" p ") is True
    assert await cache.get_cached_response("p") is None
