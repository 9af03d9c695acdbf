"""
LLM re-ranking of a candidate shortlist against the user's stated profile.
"""

import json
from typing import Optional, Sequence

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from shared.errors import LLMParseFailure
from shared.models import CandidateJob, UserProfile

from .cancellation import CancellationToken


class RerankItem(BaseModel):
    """One recommendation returned by the model."""

    id: str
    score: float = Field(allow_inf_nan=False)
    reason: Optional[str] = None


class RerankResponse(BaseModel):
    """Structured output expected from the model."""

    matches: list[RerankItem] = Field(default_factory=list)


RERANK_SCHEMA_NAME = "rank_jobs"

RERANK_SCHEMA = {
    "type": "object",
    "properties": {
        "matches": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "ID of a job from the provided list"},
                    "score": {"type": "number", "description": "Match score from 0 to 100"},
                    "reason": {
                        "type": "string",
                        "description": "Specific profile facts tied to specific job requirements",
                    },
                },
                "required": ["id", "score", "reason"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["matches"],
    "additionalProperties": False,
}

SYSTEM_PROMPT = """You are an expert technical recruiter. Your task is to pick, from a provided list of job postings, the ones that are genuinely strong matches for a candidate.

Rules:
1. Only recommend jobs that are a genuinely strong match for the candidate.
2. If no job is a strong match, return an empty list. Never pad the list with weak matches.
3. Score each recommendation from 0 to 100 and use the full range: reserve 90+ for near-perfect fits and do not cluster every score together.
4. Justify every recommendation by connecting specific facts from the candidate profile (skills, roles, years of experience, seniority) to specific requirements of the job.
5. Only use job IDs from the provided list. Never invent jobs or IDs.
6. Order the list from best to worst match.

IMPORTANT: Respond ONLY with valid JSON in the exact format specified. No other text."""


def build_user_prompt(profile: UserProfile, candidates: Sequence[CandidateJob], max_results: int) -> str:
    """Prompt listing the candidate profile and the shortlist."""
    jobs_block = "\n\n".join(
        "\n".join(
            [
                f"**ID:** {job.id}",
                f"**Title:** {job.title}",
                f"**Location:** {job.location or 'n/a'}",
                f"**Compensation:** {job.compensation or 'n/a'}",
                f"**Summary:** {job.summary or 'n/a'}",
            ]
        )
        for job in candidates
    )

    return f"""## Candidate Profile:
{profile.to_context_string()}

## Job Postings:
{jobs_block}

## Task:
Select at most {max_results} jobs that are strong matches for this candidate.
Respond in the following JSON format only:

{{"matches": [{{"id": "<job id>", "score": <0-100>, "reason": "<why this job fits>"}}]}}"""


def parse_rerank_content(content: str) -> list[RerankItem]:
    """
    Validate raw model output.

    A bare JSON array of items is accepted as well as the wrapped object.

    Raises:
        LLMParseFailure: content is not JSON or does not match the schema
    """
    if not content or not content.strip():
        raise LLMParseFailure("Empty response from LLM")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise LLMParseFailure(f"JSON parse error: {e}") from e

    if isinstance(data, list):
        data = {"matches": data}
    try:
        return RerankResponse.model_validate(data).matches
    except ValidationError as e:
        raise LLMParseFailure(f"Response does not match schema: {e.error_count()} errors") from e


def reconcile(
    items: Sequence[RerankItem],
    candidates: Sequence[CandidateJob],
    max_results: int,
) -> list[RerankItem]:
    """
    Keep only IDs that were actually offered, once each, at most ``max_results``.
    """
    allowed = {job.id for job in candidates}
    seen: set[str] = set()
    kept: list[RerankItem] = []

    for item in items:
        if item.id not in allowed:
            logger.warning(f"LLM returned job ID {item.id} which was not in the set sent for ranking")
            continue
        if item.id in seen:
            logger.debug(f"Dropping duplicate LLM entry for job {item.id}")
            continue
        if not 0 <= item.score <= 100:
            logger.warning(f"Invalid score {item.score} for job {item.id}, clamping to range 0-100")
            item = item.model_copy(update={"score": max(0.0, min(100.0, item.score))})
        seen.add(item.id)
        kept.append(item)

    return kept[: max(max_results, 0)]


class LLMReRanker:
    """Asks the chat provider to score and justify a strict subset of candidates."""

    def __init__(self, chat_provider, temperature: float = 0.3):
        self.chat = chat_provider
        self.temperature = temperature

    async def rerank(
        self,
        profile: UserProfile,
        candidates: Sequence[CandidateJob],
        max_results: int,
        token: Optional[CancellationToken] = None,
    ) -> list[RerankItem]:
        """
        Score ``candidates`` for ``profile``.

        Raises:
            LLMParseFailure: the model's answer does not match the schema
            RequestCancelled: ``token`` was cancelled while waiting
            UpstreamProviderError: the provider stayed unreachable
        """
        if not candidates:
            return []
        if token is not None:
            token.raise_if_cancelled()

        call = self.chat.complete(
            SYSTEM_PROMPT,
            build_user_prompt(profile, candidates, max_results),
            RERANK_SCHEMA_NAME,
            RERANK_SCHEMA,
            temperature=self.temperature,
        )
        if token is not None:
            content = await token.run(call)
        else:
            content = await call

        items = parse_rerank_content(content)
        ranked = reconcile(items, candidates, max_results)
        logger.info(
            f"Re-ranked {len(candidates)} candidates: model returned {len(items)}, kept {len(ranked)}"
        )
        return ranked
