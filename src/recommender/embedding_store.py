"""
Read and write profile and job embeddings.
"""

import asyncio
from typing import Iterable, Optional, Sequence

from loguru import logger

from shared.config import Settings, get_settings
from shared.errors import DimensionMismatch, EmbeddingsNotReady, ProfileNotFound
from shared.models import UserProfile

from .vector_math import Vector, normalize

EmbeddingPair = tuple[Vector, Vector]


class EmbeddingStore:
    """Embedding persistence on top of the database, plus profile embedding."""

    def __init__(self, db, embedder=None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.db = db
        self.embedder = embedder

    @property
    def dimensions(self) -> int:
        return self.settings.embedding_dimensions

    def _check_dimensions(self, vector: Sequence[float], label: str) -> None:
        if len(vector) != self.dimensions:
            raise DimensionMismatch(
                self.dimensions,
                len(vector),
                f"{label}: expected {self.dimensions} dimensions, got {len(vector)}",
            )

    async def get_profile_embeddings(self, user_id: str) -> EmbeddingPair:
        """
        Base (skill, summary) embeddings of a user's profile.

        Raises:
            ProfileNotFound: no profile row
            EmbeddingsNotReady: either vector is missing
        """
        profile = await self.db.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound(f"No profile for user {user_id}")
        return self.require_embeddings(profile)

    @staticmethod
    def require_embeddings(profile: UserProfile) -> EmbeddingPair:
        """(skill, summary) of an already loaded profile, or EmbeddingsNotReady."""
        if not profile.skill_embedding or not profile.summary_embedding:
            raise EmbeddingsNotReady(
                f"Profile embeddings for user {profile.user_id} are not computed yet"
            )
        return profile.skill_embedding, profile.summary_embedding

    async def get_job_embeddings(self, job_ids: Iterable[str]) -> dict[str, EmbeddingPair]:
        """(skill, summary) embeddings of the given jobs that have both."""
        jobs = await self.db.get_jobs_by_ids(list(job_ids))
        return {
            job.id: (job.skill_embedding, job.summary_embedding)
            for job in jobs
            if job.has_embeddings
        }

    async def save_profile_embeddings(
        self, user_id: str, skill_embedding: Sequence[float], summary_embedding: Sequence[float]
    ) -> None:
        self._check_dimensions(skill_embedding, "skill_embedding")
        self._check_dimensions(summary_embedding, "summary_embedding")
        if not await self.db.update_profile_embeddings(user_id, skill_embedding, summary_embedding):
            raise ProfileNotFound(f"No profile for user {user_id}")
        logger.info(f"Stored profile embeddings for user {user_id}")

    async def save_job_embeddings(
        self, rows: Sequence[tuple[str, Sequence[float], Sequence[float]]]
    ) -> int:
        """Validate and write ``(job_id, skill, summary)`` rows as one batch."""
        for job_id, skill, summary in rows:
            self._check_dimensions(skill, f"job {job_id} skill_embedding")
            self._check_dimensions(summary, f"job {job_id} summary_embedding")
        return await self.db.update_job_embeddings_batch(rows)

    async def embed_profile(self, profile: UserProfile) -> UserProfile:
        """
        Compute both embeddings for a freshly analysed profile and upsert it.

        The skill-text and summary-text calls are independent and run
        concurrently.
        """
        if self.embedder is None:
            raise RuntimeError("EmbeddingStore has no embedding provider")

        skill_raw, summary_raw = await asyncio.gather(
            self.embedder.embed(profile.skills_text),
            self.embedder.embed(profile.summary),
        )
        skill_embedding = normalize(skill_raw)
        summary_embedding = normalize(summary_raw)
        self._check_dimensions(skill_embedding, "skill_embedding")
        self._check_dimensions(summary_embedding, "summary_embedding")

        embedded = profile.model_copy(
            update={"skill_embedding": skill_embedding, "summary_embedding": summary_embedding}
        )
        await self.db.upsert_profile(embedded)
        logger.info(f"Embedded and stored profile for user {profile.user_id}")
        return embedded
