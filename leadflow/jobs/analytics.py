from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable

from leadflow.cache.middleware import ResponseCache
from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.encoding import to_epoch_ms, utcnow
from leadflow.db.query import Query

logger = logging.getLogger(__name__)

HIGH_SCORE = 70
MEDIUM_SCORE = 40


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Midnight-to-midnight window of the day before ``moment``."""
    today = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=1), today


def summarize_leads(leads: list[dict[str, Any]]) -> dict[str, Any]:
    by_status = Counter(lead.get("status") or "PENDING" for lead in leads)
    by_country = Counter(lead.get("country") or "Unknown" for lead in leads)
    scores = [float(lead["leadScore"]) for lead in leads if isinstance(lead.get("leadScore"), (int, float))]
    scores = [score for score in scores if score > 0]
    return {
        "leads": {
            "total": len(leads),
            "byStatus": dict(sorted(by_status.items())),
            "byCountry": dict(sorted(by_country.items())),
        },
        "scores": {
            "average": round(sum(scores) / len(scores), 2) if scores else 0,
            "distribution": {
                "high": sum(1 for score in scores if score >= HIGH_SCORE),
                "medium": sum(1 for score in scores if MEDIUM_SCORE <= score < HIGH_SCORE),
                "low": sum(1 for score in scores if score < MEDIUM_SCORE),
            },
        },
    }


def summarize_messages(messages: list[dict[str, Any]]) -> dict[str, Any]:
    by_channel = Counter(message.get("channel") or "unknown" for message in messages)
    return {"total": len(messages), "byChannel": dict(sorted(by_channel.items()))}


class AnalyticsAggregationJob:
    """Rolls yesterday's leads and messages up into one ``AnalyticsDaily`` row per day.

    Re-running for the same day overwrites that day's row.
    """

    name = "analytics"

    def __init__(
        self,
        store: Datastore,
        response_cache: ResponseCache | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.response_cache = response_cache
        self._clock = clock

    async def __call__(self) -> dict[str, Any]:
        return await self.aggregate(self._clock())

    async def aggregate(self, moment: datetime) -> dict[str, Any]:
        start, end = day_bounds(moment)
        date_key = start.date().isoformat()

        leads = await self.store.find_all(
            Query(collections.LEAD).greater_than_or_equal_to("createdAt", start).less_than("createdAt", end)
        )
        messages = await self.store.find_all(
            Query(collections.MESSAGE)
            .greater_than_or_equal_to("timestamp", to_epoch_ms(start))
            .less_than("timestamp", to_epoch_ms(end))
        )

        metrics = summarize_leads(leads)
        metrics["messages"] = summarize_messages(messages)

        existing = await self.store.first(Query(collections.ANALYTICS_DAILY).equal_to("day", date_key))
        row: dict[str, Any] = {"day": date_key, "date": start, "metrics": metrics, "computedAt": self._clock()}
        if existing is not None:
            row["objectId"] = existing["objectId"]
        await self.store.save(collections.ANALYTICS_DAILY, row)

        invalidated = 0
        if self.response_cache is not None:
            invalidated = await self.response_cache.invalidate(["analytics"])

        logger.info("aggregated %d leads and %d messages for %s", len(leads), len(messages), date_key)
        return {
            "day": date_key,
            "leads": len(leads),
            "messages": len(messages),
            "updated": existing is not None,
            "invalidated": invalidated,
        }
