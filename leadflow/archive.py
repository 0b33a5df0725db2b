from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from leadflow.db import collections
from leadflow.db.base import Datastore
from leadflow.db.encoding import to_epoch_ms, utcnow
from leadflow.db.query import Query

logger = logging.getLogger(__name__)

CAMPAIGN_ARCHIVE_DAYS = 90
MESSAGE_ARCHIVE_DAYS = 180

IDENTITY_FIELDS = ("objectId", "createdAt", "updatedAt")
ARCHIVE_FIELDS = ("archivedAt", "originalId")


@dataclass
class ArchiveResult:
    archived: int = 0
    errors: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"archived": self.archived, "errors": self.errors, "dryRun": self.dry_run}


def to_archive_record(record: dict[str, Any], archived_at: datetime) -> dict[str, Any]:
    archived = {key: value for key, value in record.items() if key not in IDENTITY_FIELDS}
    archived["archivedAt"] = archived_at
    archived["originalId"] = record["objectId"]
    return archived


def from_archive_record(record: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if key not in IDENTITY_FIELDS + ARCHIVE_FIELDS}


class ArchiveService:
    """Moves aged records into archive classes.

    Copies are saved before originals are deleted. If saving the copies fails
    the batch stops with every original still in place. An original that
    already has an archive copy (from an earlier run that failed before the
    delete) is not copied again; it is only deleted.
    """

    def __init__(
        self,
        store: Datastore,
        *,
        clock: Callable[[], datetime] = utcnow,
        message_archive_days: int = MESSAGE_ARCHIVE_DAYS,
        campaign_archive_days: int = CAMPAIGN_ARCHIVE_DAYS,
    ) -> None:
        self.store = store
        self._clock = clock
        self.message_archive_days = message_archive_days
        self.campaign_archive_days = campaign_archive_days

    async def archive_old_messages(self, limit: int = 500, dry_run: bool = False) -> ArchiveResult:
        cutoff = self._clock() - timedelta(days=self.message_archive_days)
        logger.info("archiving messages older than %s", cutoff.isoformat())
        query = (
            Query(collections.MESSAGE)
            .less_than("timestamp", to_epoch_ms(cutoff))
            .not_equal_to("status", "active")
            .ascending("timestamp")
            .limit(limit)
        )
        return await self._archive(query, collections.MESSAGE_ARCHIVE, dry_run)

    async def archive_old_campaigns(self, limit: int = 100, dry_run: bool = False) -> ArchiveResult:
        cutoff = self._clock() - timedelta(days=self.campaign_archive_days)
        logger.info("archiving completed campaigns not updated since %s", cutoff.isoformat())
        query = (
            Query(collections.CAMPAIGN)
            .equal_to("status", "completed")
            .less_than("updatedAt", cutoff)
            .ascending("updatedAt")
            .limit(limit)
        )
        return await self._archive(query, collections.CAMPAIGN_ARCHIVE, dry_run)

    async def _archive(self, query: Query, archive_class: str, dry_run: bool) -> ArchiveResult:
        source_class = query.class_name
        try:
            originals = await self.store.find(query)
            if not originals:
                logger.info("no %s records to archive", source_class)
                return ArchiveResult(dry_run=dry_run)

            if dry_run:
                logger.info("dry run: would archive %d %s records", len(originals), source_class)
                return ArchiveResult(archived=len(originals), dry_run=True)

            original_ids = [record["objectId"] for record in originals]
            existing = await self.store.find(
                Query(archive_class).contained_in("originalId", original_ids).limit(len(original_ids))
            )
            already_copied = {record.get("originalId") for record in existing}

            archived_at = self._clock()
            copies = [
                to_archive_record(record, archived_at)
                for record in originals
                if record["objectId"] not in already_copied
            ]
            if copies:
                await self.store.save_all(archive_class, copies)
            if already_copied:
                logger.info("%d %s records already had archive copies", len(already_copied), source_class)

            await self.store.destroy_all(source_class, original_ids)
        except Exception:
            logger.exception("failed to archive %s records", source_class)
            return ArchiveResult(errors=1)

        logger.info("archived %d %s records", len(original_ids), source_class)
        return ArchiveResult(archived=len(original_ids))

    async def _restore(self, archive_class: str, target_class: str, original_id: str) -> dict[str, Any] | None:
        archived = await self.store.first(Query(archive_class).equal_to("originalId", original_id))
        if archived is None:
            return None

        restored = await self.store.save(target_class, from_archive_record(archived))
        await self.store.destroy(archive_class, archived["objectId"])
        logger.info("restored %s %s as %s", target_class, original_id, restored.get("objectId"))
        return restored

    async def restore_message(self, original_id: str) -> dict[str, Any] | None:
        return await self._restore(collections.MESSAGE_ARCHIVE, collections.MESSAGE, original_id)

    async def restore_campaign(self, original_id: str) -> dict[str, Any] | None:
        return await self._restore(collections.CAMPAIGN_ARCHIVE, collections.CAMPAIGN, original_id)

    async def query_archived_messages(
        self,
        *,
        importer_id: str | None = None,
        channel: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        query = Query(collections.MESSAGE_ARCHIVE)
        if importer_id:
            query.equal_to("importerId", importer_id)
        if channel:
            query.equal_to("channel", channel)
        if start_date:
            query.greater_than_or_equal_to("timestamp", to_epoch_ms(start_date))
        if end_date:
            query.less_than_or_equal_to("timestamp", to_epoch_ms(end_date))
        return await self.store.find(query.descending("timestamp").limit(limit))
