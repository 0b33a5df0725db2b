from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from leadflow.archive import ArchiveService
from leadflow.cache import CacheRule, ResponseCache
from leadflow.db.encoding import to_epoch_ms
from leadflow.jobs import AnalyticsAggregationJob, ArchiveJob, LeadScoringJob, TokenRefreshJob
from leadflow.services import LeadScoreResult, OAuthProvider, OAuthTokenRefresher
from leadflow.services.lead_scoring import parse_score


class StubScorer:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.batches: list[list[str]] = []
        self.failing = failing or set()

    async def score_batch(self, leads):
        self.batches.append([lead["objectId"] for lead in leads])
        return [
            LeadScoreResult(lead_id=lead["objectId"], success=False, error="model error")
            if lead["objectId"] in self.failing
            else LeadScoreResult(lead_id=lead["objectId"], success=True, score=75, summary="Regular importer")
            for lead in leads
        ]


@pytest.fixture
def response_cache(cache_client, tag_index) -> ResponseCache:
    return ResponseCache(
        cache_client,
        tag_index,
        [
            CacheRule("/api/leads", ttl=60, tags=("leads",)),
            CacheRule("/api/messages", ttl=60, tags=("messages",)),
            CacheRule("/api/analytics/daily", ttl=300, tags=("analytics",)),
        ],
    )


@pytest.mark.asyncio
async def test_analytics_rolls_up_yesterday_and_upserts(datastore, clock, response_cache, cache_client):
    yesterday = clock.now - timedelta(days=1)
    datastore.seed(
        "Lead",
        [
            {"status": "NEW", "country": "BR", "leadScore": 80, "createdAt": yesterday},
            {"status": "NEW", "country": "AR", "leadScore": 50, "createdAt": yesterday},
            {"status": "WON", "country": "BR", "leadScore": 20, "createdAt": yesterday},
            {"status": "NEW", "country": "BR", "createdAt": clock.now},
        ],
    )
    datastore.seed(
        "Message",
        [
            {"channel": "email", "timestamp": to_epoch_ms(yesterday)},
            {"channel": "whatsapp", "timestamp": to_epoch_ms(yesterday)},
            {"channel": "email", "timestamp": to_epoch_ms(clock.now)},
        ],
    )
    await response_cache.store_payload("/api/analytics/daily", {"success": True, "data": []})
    job = AnalyticsAggregationJob(datastore, response_cache, clock=clock)

    result = await job()

    assert result == {"day": "2024-03-13", "leads": 3, "messages": 2, "updated": False, "invalidated": 1}
    row = datastore.all("AnalyticsDaily")[0]
    assert row["metrics"]["leads"]["byStatus"] == {"NEW": 2, "WON": 1}
    assert row["metrics"]["leads"]["byCountry"] == {"AR": 1, "BR": 2}
    assert row["metrics"]["scores"]["average"] == 50.0
    assert row["metrics"]["scores"]["distribution"] == {"high": 1, "medium": 1, "low": 1}
    assert row["metrics"]["messages"] == {"total": 2, "byChannel": {"email": 1, "whatsapp": 1}}

    again = await job()
    assert again["updated"] is True
    assert len(datastore.all("AnalyticsDaily")) == 1


@pytest.mark.asyncio
async def test_lead_scoring_scores_unscored_and_stale_leads(datastore, clock, response_cache):
    datastore.seed(
        "Lead",
        [
            {"objectId": "new", "companyName": "A"},
            {"objectId": "stale", "companyName": "B", "leadScore": 10, "scoreUpdatedAt": clock.now - timedelta(days=2)},
            {"objectId": "fresh", "companyName": "C", "leadScore": 90, "scoreUpdatedAt": clock.now - timedelta(hours=1)},
        ],
    )
    scorer = StubScorer()
    job = LeadScoringJob(datastore, scorer, response_cache, clock=clock)

    result = await job()

    assert result == {"scored": 2, "failed": 0, "total": 2}
    assert sorted(scorer.batches[0]) == ["new", "stale"]
    leads = {lead["objectId"]: lead for lead in datastore.all("Lead")}
    assert leads["new"]["leadScore"] == 75
    assert leads["new"]["scoreReason"] == "Regular importer"
    assert leads["new"]["scoreUpdatedAt"] == clock.now
    assert leads["fresh"]["leadScore"] == 90


@pytest.mark.asyncio
async def test_lead_scoring_respects_batch_size_and_counts_failures(datastore, clock):
    datastore.seed("Lead", [{"objectId": f"l{i}", "companyName": str(i)} for i in range(5)])
    scorer = StubScorer(failing={"l0"})
    job = LeadScoringJob(datastore, scorer, batch_size=3, clock=clock)

    result = await job()

    assert result["total"] == 3
    assert result["failed"] == 1
    assert result["scored"] == 2


@pytest.mark.asyncio
async def test_lead_scoring_without_scorer_is_skipped(datastore, clock):
    result = await LeadScoringJob(datastore, None, clock=clock)()
    assert result["skipped"] is True


@pytest.mark.asyncio
async def test_token_refresh_continues_past_failures(datastore, clock):
    datastore.seed(
        "PlatformConnection",
        [
            {"objectId": "c1", "channel": "outlook", "refreshToken": "r1", "expiresAt": clock.now + timedelta(minutes=10)},
            {"objectId": "c2", "channel": "gmail", "refreshToken": "bad", "expiresAt": clock.now + timedelta(minutes=20)},
            {"objectId": "c3", "channel": "outlook", "refreshToken": "r3", "expiresAt": clock.now + timedelta(hours=5)},
        ],
    )
    posted: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        form = dict(httpx.QueryParams(request.content.decode()))
        posted.append(form)
        if form["refresh_token"] == "bad":
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": "new-token", "expires_in": 3600, "refresh_token": "r1b"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    refresher = OAuthTokenRefresher(
        http_client,
        {
            "microsoft": OAuthProvider("microsoft", "https://login.example.com/token", "ms-client", "ms-secret"),
            "google": OAuthProvider("google", "https://oauth.example.com/token", "g-client", "g-secret"),
        },
        clock=clock,
    )

    result = await TokenRefreshJob(datastore, refresher, clock=clock)()
    await http_client.aclose()

    assert result == {"refreshed": 1, "failed": 1, "total": 2}
    assert [form["client_id"] for form in posted] == ["ms-client", "g-client"]
    connections = {record["objectId"]: record for record in datastore.all("PlatformConnection")}
    assert connections["c1"]["accessToken"] == "new-token"
    assert connections["c1"]["refreshToken"] == "r1b"
    assert connections["c1"]["expiresAt"] == clock.now + timedelta(hours=1)
    assert "accessToken" not in connections["c2"]
    assert "accessToken" not in connections["c3"]


@pytest.mark.asyncio
async def test_archive_job_invalidates_affected_tags(datastore, clock, response_cache, cache_client):
    datastore.seed(
        "Message",
        [{"status": "sent", "channel": "email", "timestamp": to_epoch_ms(clock.now - timedelta(days=365))}],
    )
    await response_cache.store_payload("/api/messages", {"success": True, "data": []})
    job = ArchiveJob(ArchiveService(datastore, clock=clock), response_cache)

    result = await job()

    assert result["archived"] == 1
    assert result["errors"] == 0
    assert result["messages"] == {"archived": 1, "errors": 0, "dryRun": False}
    assert await cache_client.get(response_cache.build_key("/api/messages")) is None


def test_lead_score_parsing_clamps_range():
    assert parse_score(json.dumps({"leadScore": 140, "summary": "x"})) == (100, "x")
    assert parse_score(json.dumps({"leadScore": -3})) == (0, None)
