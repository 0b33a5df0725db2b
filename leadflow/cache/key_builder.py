from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

ANONYMOUS_IDENTITY = "anonymous"


class ResponseCacheKeyBuilder:
    """Builds ``cache:{METHOD}:{path}:{query}:{identity}`` keys.

    The query component is compact JSON with parameters sorted by name so the
    same request always maps to the same key, whatever order the client sent
    its parameters in. Repeated parameters become a list.
    """

    prefix = "cache"

    def build_key(
        self,
        method: str,
        path: str,
        query: Mapping[str, Any] | Iterable[tuple[str, str]] | None = None,
        identity: str | None = None,
    ) -> str:
        query_json = json.dumps(self._normalize_query(query), separators=(",", ":"), ensure_ascii=False)
        return f"{self.prefix}:{method.upper()}:{path}:{query_json}:{identity or ANONYMOUS_IDENTITY}"

    def _normalize_query(self, query: Mapping[str, Any] | Iterable[tuple[str, str]] | None) -> dict[str, Any]:
        if query is None:
            return {}

        items = query.items() if isinstance(query, Mapping) else query
        grouped: dict[str, list[Any]] = {}
        for name, value in items:
            grouped.setdefault(str(name), []).append(value)

        return {name: values[0] if len(values) == 1 else values for name, values in sorted(grouped.items())}
