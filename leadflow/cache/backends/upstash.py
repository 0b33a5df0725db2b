from __future__ import annotations

from typing import Any

import httpx

from .base import CacheBackend


class UpstashCommandError(RuntimeError):
    pass


class UpstashRestBackend(CacheBackend):
    """Redis commands sent as JSON arrays to an Upstash REST endpoint."""

    name = "upstash"

    def __init__(self, url: str, token: str, http_client: httpx.AsyncClient | None = None, timeout: float = 3.0) -> None:
        self.url = url.rstrip("/")
        self.token = token
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def _command(self, *parts: Any) -> Any:
        response = await self.http_client.post(
            self.url,
            json=[str(part) for part in parts],
            headers={"Authorization": f"Bearer {self.token}"},
        )
        payload = response.json() if response.content else {}
        if response.status_code >= 400 or "error" in payload:
            raise UpstashCommandError(payload.get("error") or f"upstash returned {response.status_code}")
        return payload.get("result")

    async def get(self, key: str) -> str | None:
        return await self._command("GET", key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        if ttl:
            result = await self._command("SET", key, value, "EX", int(ttl))
        else:
            result = await self._command("SET", key, value)
        return result == "OK"

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._command("DEL", *keys) or 0)

    async def exists(self, key: str) -> bool:
        return int(await self._command("EXISTS", key) or 0) == 1

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return list(await self._command("MGET", *keys) or [])

    async def mset(self, mapping: dict[str, str]) -> bool:
        if not mapping:
            return True
        flat: list[str] = []
        for key, value in mapping.items():
            flat.extend((key, value))
        return await self._command("MSET", *flat) == "OK"

    async def incr(self, key: str) -> int:
        return int(await self._command("INCR", key))

    async def expire(self, key: str, ttl: int) -> bool:
        return int(await self._command("EXPIRE", key, int(ttl)) or 0) == 1

    async def ping(self) -> bool:
        return await self._command("PING") == "PONG"

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
