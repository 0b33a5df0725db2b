from __future__ import annotations

import pytest

from leadflow.cache import CacheClient, CacheTagIndex, NoopBackend, tag_key


@pytest.mark.asyncio
async def test_invalidate_by_tag_deletes_members_then_reports_zero(cache_client, tag_index):
    await cache_client.set("k1", "one", ttl=60)
    await cache_client.set("k2", "two", ttl=60)
    await tag_index.tag("k1", ["products"])
    await tag_index.tag("k2", ["products"])

    assert await tag_index.invalidate_by_tag(["products"]) == 2
    assert await cache_client.get("k1") is None
    assert await cache_client.get("k2") is None
    assert await cache_client.exists(tag_key("products")) is False
    assert await tag_index.invalidate_by_tag(["products"]) == 0


@pytest.mark.asyncio
async def test_tagging_is_idempotent_and_spans_tags(tag_index):
    await tag_index.tag("k1", ["products", "catalog"])
    await tag_index.tag("k1", "products")

    assert await tag_index.get_keys_by_tag("products") == ["k1"]
    assert await tag_index.get_keys_by_tag("catalog") == ["k1"]


@pytest.mark.asyncio
async def test_untag_removes_key_and_drops_empty_tag(cache_client, tag_index):
    await tag_index.tag("k1", ["products"])
    await tag_index.tag("k2", ["products"])

    await tag_index.untag("k1", ["products"])
    assert await tag_index.get_keys_by_tag("products") == ["k2"]

    await tag_index.untag("k2", ["products"])
    assert await cache_client.exists(tag_key("products")) is False


@pytest.mark.asyncio
async def test_tag_records_expire(cache_client, tag_index, clock):
    await tag_index.tag("k1", ["products"])
    await clock.advance(tag_index.tag_ttl + 1)
    assert await tag_index.get_keys_by_tag("products") == []


@pytest.mark.asyncio
async def test_corrupted_tag_record_is_discarded(cache_client, tag_index):
    await cache_client.set(tag_key("products"), "{not json")

    assert await tag_index.get_keys_by_tag("products") == []
    assert await cache_client.exists(tag_key("products")) is False


@pytest.mark.asyncio
async def test_disabled_cache_tags_nothing():
    index = CacheTagIndex(CacheClient(NoopBackend()))
    assert await index.tag("k1", ["products"]) is False
    assert await index.invalidate_by_tag(["products"]) == 0
