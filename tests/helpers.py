"""
In-memory fakes for the database and the providers.
"""

import asyncio
import hashlib
import json
from typing import Any, Callable, Iterable, Optional, Union

from recommender.retriever import rank_jobs
from recommender.vector_math import normalize
from shared.models import Feedback, JobPosting, UserProfile
from shared.vectors import format_vector

DIM = 4
BASE = [1.0, 0.0, 0.0, 0.0]


def unit(*components: float) -> list[float]:
    return normalize(list(components))


class FakeDatabase:
    """In-memory stand-in for shared.database.Database."""

    def __init__(self) -> None:
        self.profiles: dict[str, UserProfile] = {}
        self.jobs: dict[str, JobPosting] = {}
        self.feedback: dict[tuple[str, str], Feedback] = {}
        self.raw_jobs: dict[str, dict[str, Any]] = {}
        self.batch_writes: list[list[str]] = []
        self.nearest_queries: list[set[str]] = []
        self.corrupt_embeddings: dict[str, tuple[Any, Any]] = {}

    # Profiles
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self.profiles.get(user_id)

    async def upsert_profile(self, profile: UserProfile) -> None:
        self.profiles[profile.user_id] = profile

    async def update_profile_embeddings(self, user_id, skill_embedding, summary_embedding) -> bool:
        profile = self.profiles.get(user_id)
        if profile is None:
            return False
        self.profiles[user_id] = profile.model_copy(
            update={
                "skill_embedding": list(skill_embedding),
                "summary_embedding": list(summary_embedding),
            }
        )
        return True

    # Feedback
    async def get_feedback(self, user_id: str) -> list[Feedback]:
        return [f for (uid, _), f in self.feedback.items() if uid == user_id]

    async def get_liked_job_ids(self, user_id: str) -> list[str]:
        return [f.job_id for (uid, _), f in self.feedback.items() if uid == user_id and f.liked]

    async def upsert_feedback(self, user_id: str, job_id: str, liked: bool) -> None:
        self.feedback[(user_id, job_id)] = Feedback(user_id=user_id, job_id=job_id, liked=liked)

    async def get_like_counts(self, job_ids: Iterable[str]) -> dict[str, int]:
        wanted = set(job_ids)
        counts: dict[str, int] = {}
        for f in self.feedback.values():
            if f.liked and f.job_id in wanted:
                counts[f.job_id] = counts.get(f.job_id, 0) + 1
        return counts

    # Jobs
    async def get_jobs_by_ids(self, job_ids: Iterable[str]) -> list[JobPosting]:
        return [self.jobs[job_id] for job_id in job_ids if job_id in self.jobs]

    async def get_raw_job_embeddings(self, job_ids: Iterable[str]) -> list[dict[str, Any]]:
        rows = []
        for job_id in job_ids:
            if job_id in self.corrupt_embeddings:
                skill, summary = self.corrupt_embeddings[job_id]
            elif job_id in self.jobs:
                job = self.jobs[job_id]
                skill = format_vector(job.skill_embedding) if job.skill_embedding else None
                summary = format_vector(job.summary_embedding) if job.summary_embedding else None
            else:
                continue
            rows.append({"id": job_id, "skill_embedding": skill, "summary_embedding": summary})
        return rows

    async def nearest_jobs(
        self, query_skill, query_summary, exclude_ids, k, skill_weight, summary_weight
    ) -> tuple[list[tuple[JobPosting, float]], int]:
        excluded = set(exclude_ids)
        self.nearest_queries.append(excluded)
        retrieval = rank_jobs(
            self.jobs.values(), query_skill, query_summary, excluded, k, skill_weight, summary_weight
        )
        return retrieval.candidates, retrieval.considered

    async def get_unrated_jobs(self, user_id: str, limit: int) -> list[JobPosting]:
        rated = {job_id for (uid, job_id) in self.feedback if uid == user_id}
        return [job for job in self.jobs.values() if job.id not in rated][:limit]

    async def get_jobs_missing_embeddings(self) -> list[dict[str, Any]]:
        return [
            raw
            for job_id, raw in self.raw_jobs.items()
            if job_id not in self.jobs or not self.jobs[job_id].has_embeddings
        ]

    async def update_job_embeddings_batch(self, rows) -> int:
        for job_id, skill, summary in rows:
            raw = self.raw_jobs.get(job_id, {})
            self.jobs[job_id] = JobPosting(
                id=job_id,
                title=raw.get("title", ""),
                skill_embedding=list(skill),
                summary_embedding=list(summary),
            )
        self.batch_writes.append([row[0] for row in rows])
        return len(rows)


class FakeChat:
    """Chat provider returning canned content (or the result of a callable)."""

    def __init__(self, content: Union[str, Callable[..., Any]] = '{"matches": []}'):
        self.content = content
        self.calls: list[dict[str, Any]] = []

    async def complete(self, system_prompt, user_prompt, schema_name, schema, temperature=0.3):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "schema_name": schema_name,
                "schema": schema,
            }
        )
        if callable(self.content):
            result = self.content(user_prompt)
            if asyncio.iscoroutine(result):
                result = await result
            return result
        return self.content


class FakeEmbedder:
    """Deterministic text -> vector provider that records concurrency."""

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [float(b) + 1.0 for b in digest[: self.dim]]


def matches_json(*items: tuple[str, float, str]) -> str:
    return json.dumps({"matches": [{"id": i, "score": s, "reason": r} for i, s, r in items]})
