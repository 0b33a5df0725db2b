from __future__ import annotations

import logging
from typing import Any

from leadflow.archive import ArchiveService
from leadflow.cache.middleware import ResponseCache

logger = logging.getLogger(__name__)


class ArchiveJob:
    name = "archive"

    def __init__(
        self,
        archive_service: ArchiveService,
        response_cache: ResponseCache | None = None,
        *,
        message_limit: int = 500,
        campaign_limit: int = 100,
    ) -> None:
        self.archive_service = archive_service
        self.response_cache = response_cache
        self.message_limit = message_limit
        self.campaign_limit = campaign_limit

    async def __call__(self) -> dict[str, Any]:
        messages = await self.archive_service.archive_old_messages(limit=self.message_limit)
        campaigns = await self.archive_service.archive_old_campaigns(limit=self.campaign_limit)

        if self.response_cache is not None:
            if messages.archived:
                await self.response_cache.invalidate(["messages"])
            if campaigns.archived:
                await self.response_cache.invalidate(["campaigns"])

        return {
            "messages": messages.as_dict(),
            "campaigns": campaigns.as_dict(),
            "archived": messages.archived + campaigns.archived,
            "errors": messages.errors + campaigns.errors,
        }
