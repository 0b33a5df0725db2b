from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from fastapi import FastAPI

from leadflow.cache import CacheClient, CacheTagIndex, InMemoryBackend
from leadflow.cache.backends import CacheBackend
from leadflow.config import AppConfig, Settings
from leadflow.db import InMemoryDatastore
from leadflow.main import configure_components, create_app


class FakeClock:
    """Controllable wall clock; ``sleep`` only returns once ``advance`` passes its deadline."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 14, 12, 0, 30, tzinfo=UTC)
        self._sleepers: list[tuple[datetime, asyncio.Future[None]]] = []

    def __call__(self) -> datetime:
        return self.now

    def time(self) -> float:
        return self.now.timestamp()

    async def sleep(self, seconds: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + timedelta(seconds=seconds), future))
        await future

    async def advance(self, seconds: float) -> None:
        for _ in range(5):
            await asyncio.sleep(0)
        self.now += timedelta(seconds=seconds)
        due = [item for item in self._sleepers if item[0] <= self.now]
        self._sleepers = [item for item in self._sleepers if item[0] > self.now]
        for _, future in due:
            if not future.done():
                future.set_result(None)
        for _ in range(20):
            await asyncio.sleep(0)


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None):
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def exists(self, key: str):
        return 1 if key in self.store else 0

    async def mget(self, keys):
        return [self.store.get(key) for key in keys]

    async def mset(self, mapping: dict[str, str]):
        self.store.update(mapping)
        return True

    async def incr(self, key: str):
        self.store[key] = str(int(self.store.get(key, 0)) + 1)
        return int(self.store[key])

    async def expire(self, key: str, ttl: int):
        if key not in self.store:
            return False
        self.ttls[key] = ttl
        return True

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class BrokenBackend(CacheBackend):
    """Backend whose every call fails like an unreachable server."""

    name = "broken"

    def __init__(self) -> None:
        self.calls = 0

    async def _fail(self) -> Any:
        self.calls += 1
        raise ConnectionError("connection refused")

    async def get(self, key: str) -> str | None:
        return await self._fail()

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        return await self._fail()

    async def delete(self, *keys: str) -> int:
        return await self._fail()

    async def exists(self, key: str) -> bool:
        return await self._fail()

    async def mget(self, keys: list[str]) -> list[str | None]:
        return await self._fail()

    async def mset(self, mapping: dict[str, str]) -> bool:
        return await self._fail()

    async def incr(self, key: str) -> int:
        return await self._fail()

    async def expire(self, key: str, ttl: int) -> bool:
        return await self._fail()

    async def ping(self) -> bool:
        return await self._fail()


def _unexpected_request(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"error": f"unexpected request to {request.url}"})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_backend(clock: FakeClock) -> InMemoryBackend:
    return InMemoryBackend(max_size=1000, clock=clock.time)


@pytest.fixture
def cache_client(memory_backend: InMemoryBackend) -> CacheClient:
    return CacheClient(memory_backend, timeout=1.0)


@pytest.fixture
def tag_index(cache_client: CacheClient) -> CacheTagIndex:
    return CacheTagIndex(cache_client)


@pytest.fixture
def datastore(clock: FakeClock) -> InMemoryDatastore:
    return InMemoryDatastore(clock=clock)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="test",
        use_memory_cache=True,
        scheduled_jobs_enabled=False,
        reduced_job_frequency=False,
        azure_free_tier=False,
        website_sku=None,
        llm_api_key=None,
        microsoft_client_id=None,
        google_client_id=None,
    )


@pytest.fixture
async def test_app(test_settings: Settings, datastore: InMemoryDatastore, memory_backend: InMemoryBackend) -> FastAPI:
    app = create_app()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_unexpected_request))
    configure_components(
        app,
        test_settings,
        AppConfig(),
        datastore=datastore,
        cache_backend=memory_backend,
        http_client=http_client,
    )
    yield app
    await http_client.aclose()


@pytest.fixture
async def client(test_app: FastAPI):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def broken_backend() -> BrokenBackend:
    return BrokenBackend()
