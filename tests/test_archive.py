from __future__ import annotations

from datetime import timedelta

import pytest

from leadflow.archive import ArchiveService
from leadflow.db import Query
from leadflow.db.encoding import to_epoch_ms


def _seed_messages(datastore, clock) -> dict[str, str]:
    old = to_epoch_ms(clock.now - timedelta(days=200))
    recent = to_epoch_ms(clock.now - timedelta(days=10))
    records = datastore.seed(
        "Message",
        [
            {"channel": "email", "status": "sent", "content": "old", "importerId": "imp-1", "timestamp": old},
            {"channel": "whatsapp", "status": "active", "content": "old active", "timestamp": old},
            {"channel": "email", "status": "sent", "content": "recent", "timestamp": recent},
        ],
    )
    return {record["content"]: record["objectId"] for record in records}


@pytest.fixture
def archive_service(datastore, clock) -> ArchiveService:
    return ArchiveService(datastore, clock=clock)


@pytest.mark.asyncio
async def test_dry_run_reports_without_mutating(archive_service, datastore, clock):
    ids = _seed_messages(datastore, clock)

    result = await archive_service.archive_old_messages(dry_run=True)

    assert result.archived == 1
    assert result.dry_run is True
    assert len(datastore.all("Message")) == 3
    assert datastore.all("MessageArchive") == []
    assert ids["old"] in {record["objectId"] for record in datastore.all("Message")}


@pytest.mark.asyncio
async def test_archive_copies_then_deletes_aged_inactive_messages(archive_service, datastore, clock):
    ids = _seed_messages(datastore, clock)

    result = await archive_service.archive_old_messages()

    assert (result.archived, result.errors) == (1, 0)
    assert await datastore.count(Query("Message").equal_to("objectId", ids["old"])) == 0
    copy = await datastore.first(Query("MessageArchive").equal_to("originalId", ids["old"]))
    assert copy["content"] == "old"
    assert copy["channel"] == "email"
    assert copy["importerId"] == "imp-1"
    assert copy["archivedAt"] == clock.now
    assert copy["objectId"] != ids["old"]
    assert {record["content"] for record in datastore.all("Message")} == {"old active", "recent"}


@pytest.mark.asyncio
async def test_failed_copy_save_leaves_originals_in_place(archive_service, datastore, clock):
    _seed_messages(datastore, clock)
    datastore.fail_saves_for.add("MessageArchive")

    result = await archive_service.archive_old_messages()

    assert (result.archived, result.errors) == (0, 1)
    assert len(datastore.all("Message")) == 3
    assert datastore.calls["destroy_all"] == 0


@pytest.mark.asyncio
async def test_rerun_after_partial_failure_does_not_duplicate_copies(archive_service, datastore, clock):
    ids = _seed_messages(datastore, clock)
    datastore.seed("MessageArchive", [{"content": "old", "originalId": ids["old"], "archivedAt": clock.now}])

    result = await archive_service.archive_old_messages()

    assert result.archived == 1
    assert len(datastore.all("MessageArchive")) == 1
    assert await datastore.count(Query("Message").equal_to("objectId", ids["old"])) == 0


@pytest.mark.asyncio
async def test_batch_limit_archives_oldest_first(archive_service, datastore, clock):
    datastore.seed(
        "Message",
        [
            {"status": "sent", "content": f"m{i}", "timestamp": to_epoch_ms(clock.now - timedelta(days=300 - i))}
            for i in range(5)
        ],
    )

    result = await archive_service.archive_old_messages(limit=2)

    assert result.archived == 2
    assert {record["content"] for record in datastore.all("MessageArchive")} == {"m0", "m1"}


@pytest.mark.asyncio
async def test_archive_completed_campaigns_past_threshold(archive_service, datastore, clock):
    datastore.seed(
        "Campaign",
        [
            {"name": "spring", "status": "completed", "updatedAt": clock.now - timedelta(days=120)},
            {"name": "summer", "status": "running", "updatedAt": clock.now - timedelta(days=120)},
            {"name": "fall", "status": "completed", "updatedAt": clock.now - timedelta(days=30)},
        ],
    )

    result = await archive_service.archive_old_campaigns()

    assert result.archived == 1
    assert [record["name"] for record in datastore.all("CampaignArchive")] == ["spring"]


@pytest.mark.asyncio
async def test_restore_message_recreates_live_record(archive_service, datastore, clock):
    ids = _seed_messages(datastore, clock)
    await archive_service.archive_old_messages()

    restored = await archive_service.restore_message(ids["old"])

    assert restored["content"] == "old"
    assert "originalId" not in restored
    assert "archivedAt" not in restored
    assert datastore.all("MessageArchive") == []
    assert await archive_service.restore_message(ids["old"]) is None


@pytest.mark.asyncio
async def test_query_archived_messages_filters(archive_service, datastore, clock):
    _seed_messages(datastore, clock)
    await archive_service.archive_old_messages()

    by_importer = await archive_service.query_archived_messages(importer_id="imp-1")
    by_channel = await archive_service.query_archived_messages(channel="whatsapp")

    assert [record["content"] for record in by_importer] == ["old"]
    assert by_channel == []
