"""
Candidate retrieval by combined embedding distance.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from loguru import logger

from shared.config import Settings, get_settings
from shared.errors import DimensionMismatch
from shared.models import JobPosting

from .vector_math import l2_distances, stack_vectors


@dataclass
class Retrieval:
    """Ranked candidates plus how many jobs were scored."""

    candidates: list[tuple[JobPosting, float]] = field(default_factory=list)
    considered: int = 0

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    @property
    def jobs(self) -> list[JobPosting]:
        return [job for job, _ in self.candidates]


def rank_jobs(
    jobs: Iterable[JobPosting],
    query_skill: Sequence[float],
    query_summary: Sequence[float],
    exclude_ids: Iterable[str],
    k: int,
    skill_weight: float,
    summary_weight: float,
) -> Retrieval:
    """
    In-memory counterpart of ``Database.nearest_jobs``.

    Scores every eligible job in one matrix pass per embedding space and
    orders by (distance, id).
    """
    excluded = set(exclude_ids)
    eligible = [job for job in jobs if job.id not in excluded and job.has_embeddings]
    if not eligible:
        return Retrieval()

    skills = stack_vectors([job.skill_embedding for job in eligible], len(query_skill))
    summaries = stack_vectors([job.summary_embedding for job in eligible], len(query_summary))
    distances = summary_weight * l2_distances(summaries, query_summary) + skill_weight * l2_distances(
        skills, query_skill
    )

    scored = sorted(zip(eligible, distances.tolist()), key=lambda item: (item[1], item[0].id))
    return Retrieval(candidates=scored[: max(k, 0)], considered=len(scored))


class CandidateRetriever:
    """
    Nearest jobs to a (skill, summary) query pair.

    Combined distance is ``summary_weight * L2(summary) + skill_weight * L2(skill)``
    over unit vectors; lower means more similar. The ranking itself runs in
    the database.
    """

    def __init__(
        self,
        db,
        settings: Optional[Settings] = None,
        skill_weight: Optional[float] = None,
        summary_weight: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.skill_weight = self.settings.skill_weight if skill_weight is None else skill_weight
        self.summary_weight = (
            self.settings.summary_weight if summary_weight is None else summary_weight
        )

    def rank(
        self,
        jobs: Iterable[JobPosting],
        query_skill: Sequence[float],
        query_summary: Sequence[float],
        exclude_ids: Iterable[str],
        k: int,
    ) -> Retrieval:
        """Score and order ``jobs`` in memory with this retriever's weights."""
        return rank_jobs(
            jobs, query_skill, query_summary, exclude_ids, k, self.skill_weight, self.summary_weight
        )

    def _check_query(self, vector: Sequence[float], label: str) -> None:
        dimensions = self.settings.embedding_dimensions
        if len(vector) != dimensions:
            raise DimensionMismatch(
                dimensions, len(vector), f"{label}: expected {dimensions} dimensions, got {len(vector)}"
            )

    async def retrieve(
        self,
        query_skill: Sequence[float],
        query_summary: Sequence[float],
        exclude_ids: Iterable[str],
        k: int,
    ) -> Retrieval:
        """
        Top ``k`` jobs by ascending combined distance.

        Jobs in ``exclude_ids`` or without both embeddings never appear.
        An empty corpus yields an empty Retrieval, not an error.
        """
        self._check_query(query_skill, "query skill vector")
        self._check_query(query_summary, "query summary vector")

        excluded = set(exclude_ids)
        candidates, considered = await self.db.nearest_jobs(
            query_skill,
            query_summary,
            excluded,
            k,
            skill_weight=self.skill_weight,
            summary_weight=self.summary_weight,
        )
        retrieval = Retrieval(candidates=candidates, considered=considered)
        logger.info(
            f"Retrieved {len(retrieval)} of {retrieval.considered} eligible jobs "
            f"({len(excluded)} excluded)"
        )
        return retrieval
