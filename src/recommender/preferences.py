"""
Fold liked-job embeddings into the query vectors.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from loguru import logger

from shared.config import Settings, get_settings
from shared.errors import FormatError
from shared.vectors import coerce_to_vector

from .vector_math import Vector, average_vectors, weighted_combine


@dataclass
class AdjustedVectors:
    """Query vectors after preference adjustment."""

    skill: Vector
    summary: Vector
    liked_used: int = 0
    warnings: list[str] = field(default_factory=list)


class PreferenceAdjuster:
    """Blends the average liked-job embedding into the base profile vectors."""

    def __init__(
        self,
        db,
        settings: Optional[Settings] = None,
        profile_weight: Optional[float] = None,
        liked_weight: Optional[float] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.profile_weight = (
            self.settings.profile_weight if profile_weight is None else profile_weight
        )
        self.liked_weight = self.settings.liked_jobs_weight if liked_weight is None else liked_weight

    async def adjust(
        self,
        base_skill: Sequence[float],
        base_summary: Sequence[float],
        liked_job_ids: Iterable[str],
    ) -> AdjustedVectors:
        """
        Return adjusted (skill, summary) query vectors.

        With no likes, or no liked job carrying usable embeddings, the base
        vectors come back unchanged.
        """
        ids = list(liked_job_ids)
        result = AdjustedVectors(skill=list(base_skill), summary=list(base_summary))
        if not ids:
            return result

        rows = await self.db.get_raw_job_embeddings(ids)

        skill_vectors = []
        summary_vectors = []
        for row in sorted(rows, key=lambda r: str(r["id"])):
            if row["skill_embedding"] is None or row["summary_embedding"] is None:
                continue
            try:
                skill = coerce_to_vector(row["skill_embedding"])
                summary = coerce_to_vector(row["summary_embedding"])
            except FormatError as e:
                message = f"Skipping liked job {row['id']} with unreadable embeddings: {e}"
                logger.warning(message)
                result.warnings.append(message)
                continue
            if not skill or not summary:
                continue
            skill_vectors.append(skill)
            summary_vectors.append(summary)

        avg_skill = average_vectors(skill_vectors, result.warnings)
        avg_summary = average_vectors(summary_vectors, result.warnings)

        if avg_skill is not None:
            result.skill = weighted_combine(
                base_skill, avg_skill, self.profile_weight, self.liked_weight
            )
        if avg_summary is not None:
            result.summary = weighted_combine(
                base_summary, avg_summary, self.profile_weight, self.liked_weight
            )
        result.liked_used = len(skill_vectors)

        logger.debug(f"Adjusted query vectors with {result.liked_used} of {len(ids)} liked jobs")
        return result
