from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.encoding import utcnow
from leadflow.db.query import Query
from leadflow.services.oauth import OAuthTokenRefresher

logger = logging.getLogger(__name__)


class TokenRefreshJob:
    """Refreshes OAuth access tokens that expire within ``window_seconds``.

    A failing connection is logged and counted; the remaining connections are
    still refreshed.
    """

    name = "token_refresh"

    def __init__(
        self,
        store: Datastore,
        refresher: OAuthTokenRefresher | None,
        *,
        window_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.refresher = refresher
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock

    async def __call__(self) -> dict[str, Any]:
        if self.refresher is None:
            logger.info("no OAuth providers configured, skipping token refresh")
            return {"refreshed": 0, "failed": 0, "total": 0, "skipped": True}

        deadline = self._clock() + self.window
        connections = await self.store.find_all(
            Query(collections.PLATFORM_CONNECTION)
            .less_than("expiresAt", deadline)
            .ascending("expiresAt")
        )

        refreshed = failed = 0
        for connection in connections:
            try:
                updates = await self.refresher.refresh(connection)
                await self.store.save(
                    collections.PLATFORM_CONNECTION,
                    {**updates, "objectId": connection["objectId"]},
                )
                refreshed += 1
            except Exception as exc:
                failed += 1
                logger.warning("token refresh failed for connection %s: %s", connection.get("objectId"), exc)

        logger.info("refreshed %d/%d OAuth tokens", refreshed, len(connections))
        return {"refreshed": refreshed, "failed": failed, "total": len(connections)}
