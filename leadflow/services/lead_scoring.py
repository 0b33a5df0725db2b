from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from leadflow.cache.ai_response import AIResponseCache

logger = logging.getLogger(__name__)

LEAD_PROMPT_FIELDS = ("companyName", "country", "productsImported", "status", "lastContacted")

SCORING_INSTRUCTIONS = """You score B2B import leads from 0 to 100 by purchase likelihood.
Reply with a JSON object: {"leadScore": <integer 0-100>, "summary": "<one sentence>"}.

Lead:
"""


@dataclass
class LeadScoreResult:
    lead_id: str
    success: bool
    score: int | None = None
    summary: str | None = None
    error: str | None = None
    cached: bool = False


class LeadScorer(Protocol):
    async def score_batch(self, leads: list[dict[str, Any]]) -> list[LeadScoreResult]: ...


def build_lead_prompt(lead: dict[str, Any]) -> str:
    facts = {field: lead.get(field) for field in LEAD_PROMPT_FIELDS if lead.get(field) is not None}
    return SCORING_INSTRUCTIONS + json.dumps(facts, sort_keys=True, indent=2, default=str)


def parse_score(content: str) -> tuple[int, str | None]:
    data = json.loads(content)
    score = int(round(float(data["leadScore"])))
    return max(0, min(100, score)), data.get("summary")


class LLMLeadScorer:
    """Scores leads one prompt at a time against an OpenAI-compatible chat completions API.

    Identical lead facts produce identical prompts, so repeat scoring is served
    from the AI response cache without a model call.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        api_base: str,
        api_key: str,
        model: str,
        ai_cache: AIResponseCache | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.http_client = http_client
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.ai_cache = ai_cache
        self.timeout = timeout

    async def _complete(self, prompt: str) -> str:
        response = await self.http_client.post(
            f"{self.api_base}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
                "response_format": {"type": "json_object"},
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"]

    async def score_lead(self, lead: dict[str, Any]) -> LeadScoreResult:
        lead_id = str(lead.get("objectId"))
        prompt = build_lead_prompt(lead)

        if self.ai_cache is not None:
            cached = await self.ai_cache.get_cached_response(prompt)
            if cached is not None:
                try:
                    score, summary = parse_score(cached["response"])
                    return LeadScoreResult(lead_id=lead_id, success=True, score=score, summary=summary, cached=True)
                except (KeyError, TypeError, ValueError):
                    await self.ai_cache.invalidate_prompt(prompt)

        try:
            content = await self._complete(prompt)
            score, summary = parse_score(content)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.warning("scoring lead %s failed: %s", lead_id, exc)
            return LeadScoreResult(lead_id=lead_id, success=False, error=str(exc))

        if self.ai_cache is not None:
            await self.ai_cache.cache_response(prompt, content, {"model": self.model, "kind": "lead_score"})
        return LeadScoreResult(lead_id=lead_id, success=True, score=score, summary=summary)

    async def score_batch(self, leads: list[dict[str, Any]]) -> list[LeadScoreResult]:
        return [await self.score_lead(lead) for lead in leads]
