from __future__ import annotations

from datetime import timedelta

import pytest

from leadflow.cache import PeriodicTask, ProductCatalogCache, TemplateCache, compile_template


def test_product_catalog_cache_scopes_by_user_and_expires(clock):
    cache = ProductCatalogCache(ttl=300, clock=clock.time)
    cache.set({"data": [1]})
    cache.set({"data": [2]}, user_id="u1")

    assert cache.cache_key() == "product:catalog:global"
    assert cache.cache_key("u1") == "product:catalog:u1"
    assert cache.get() == {"data": [1]}
    assert cache.get("u1") == {"data": [2]}

    clock.now += timedelta(seconds=301)
    assert cache.get() is None
    assert cache.get("u1") is None


def test_product_catalog_invalidate_one_or_all(clock):
    cache = ProductCatalogCache(ttl=300, clock=clock.time)
    cache.set({"data": []})
    cache.set({"data": []}, user_id="u1")

    assert cache.invalidate("u1") == 1
    assert cache.get() is not None
    assert cache.invalidate() == 1
    assert cache.get() is None


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired_entries(clock):
    cache = ProductCatalogCache(ttl=300, clock=clock.time)
    cache.set({"data": []}, user_id="old")
    await clock.advance(200)
    cache.set({"data": []}, user_id="new")
    await clock.advance(200)

    stats = cache.get_stats()
    assert stats["total_entries"] == 2
    assert stats["expired_entries"] == 1
    assert cache.cleanup() == 1
    assert cache.get_stats()["total_entries"] == 1


def test_compile_template_substitutes_known_placeholders():
    content = "Hi {{ name }}, your order {{order}} ships {{when}}{{missing}}"
    assert compile_template(content, {"name": "Ana", "order": 42, "when": None}) == (
        "Hi Ana, your order 42 ships {{missing}}"
    )


def test_template_cache_compiles_once_per_variables(clock):
    cache = TemplateCache(ttl=3600, clock=clock.time)

    first = cache.get_compiled("welcome", "Hello {{name}}", {"name": "Ana"})
    second = cache.get_compiled("welcome", "Hello {{name}}", {"name": "Ana"})
    other = cache.get_compiled("welcome", "Hello {{name}}", {"name": "Bo"})

    assert first == second == "Hello Ana"
    assert other == "Hello Bo"
    assert cache.compilations == 2
    key = cache.cache_key("welcome", "Hello {{name}}", {"name": "Ana"})
    assert key.startswith("template:compiled:welcome:")
    assert len(key.rsplit(":", 1)[1]) == 16


def test_template_invalidate_is_scoped_to_template(clock):
    cache = TemplateCache(ttl=3600, clock=clock.time)
    cache.get_compiled("a", "x {{v}}", {"v": 1})
    cache.get_compiled("b", "y {{v}}", {"v": 1})

    assert cache.invalidate("a") == 1
    cache.get_compiled("b", "y {{v}}", {"v": 1})
    assert cache.compilations == 2


@pytest.mark.asyncio
async def test_periodic_sweep_runs_until_stopped(clock):
    cache = TemplateCache(ttl=10, clock=clock.time)
    cache.get_compiled("a", "x", {})
    sweeper = PeriodicTask("template-sweep", cache.cleanup, interval=60, sleep=clock.sleep)

    sweeper.start()
    await clock.advance(61)
    assert sweeper.runs == 1
    assert len(cache) == 0

    await sweeper.stop()
    await clock.advance(120)
    assert sweeper.runs == 1
    assert sweeper.running is False


@pytest.mark.asyncio
async def test_periodic_task_survives_failing_action(clock):
    def explode() -> None:
        raise RuntimeError("boom")

    task = PeriodicTask("explode", explode, interval=10, sleep=clock.sleep)
    task.start()
    await clock.advance(11)
    await clock.advance(11)
    assert task.runs == 2
    assert task.running is True
    await task.stop()
