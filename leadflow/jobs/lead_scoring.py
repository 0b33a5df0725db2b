from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from leadflow.cache.middleware import ResponseCache
from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.encoding import utcnow
from leadflow.db.query import Query
from leadflow.services.lead_scoring import LeadScorer

logger = logging.getLogger(__name__)

RESCORE_AFTER = timedelta(hours=24)


def stale_leads_query(cutoff: datetime, limit: int) -> Query:
    return Query.or_(
        Query(collections.LEAD).does_not_exist("leadScore"),
        Query(collections.LEAD).does_not_exist("scoreUpdatedAt"),
        Query(collections.LEAD).less_than("scoreUpdatedAt", cutoff),
    ).ascending("createdAt").limit(limit)


class LeadScoringJob:
    """Scores leads that have no score or a score older than a day, at most ``batch_size`` per run.

    The score is written onto the lead record itself so list views need no
    extra lookup.
    """

    name = "lead_scoring"

    def __init__(
        self,
        store: Datastore,
        scorer: LeadScorer | None,
        response_cache: ResponseCache | None = None,
        *,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.scorer = scorer
        self.response_cache = response_cache
        self.batch_size = batch_size
        self._clock = clock

    async def __call__(self) -> dict[str, Any]:
        if self.scorer is None:
            logger.info("no lead scorer configured, skipping lead scoring")
            return {"scored": 0, "failed": 0, "total": 0, "skipped": True}

        now = self._clock()
        leads = await self.store.find(stale_leads_query(now - RESCORE_AFTER, self.batch_size))
        if not leads:
            logger.info("no leads need scoring")
            return {"scored": 0, "failed": 0, "total": 0}

        results = await self.scorer.score_batch(leads)
        by_id = {lead["objectId"]: lead for lead in leads}
        updates: list[dict[str, Any]] = []
        failed = 0
        for result in results:
            lead = by_id.get(result.lead_id)
            if lead is None or not result.success:
                failed += 1
                continue
            update = {"objectId": lead["objectId"], "leadScore": result.score, "scoreUpdatedAt": now}
            if result.summary:
                update["scoreReason"] = result.summary
            updates.append(update)

        scored = 0
        for update in updates:
            try:
                await self.store.save(collections.LEAD, update)
                scored += 1
            except Exception as exc:
                logger.warning("failed to store score for lead %s: %s", update["objectId"], exc)
                failed += 1

        if scored and self.response_cache is not None:
            await self.response_cache.invalidate(["leads"])

        logger.info("scored %d/%d leads (%d failed)", scored, len(leads), failed)
        return {"scored": scored, "failed": failed, "total": len(leads)}
