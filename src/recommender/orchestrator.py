"""
End-to-end recommendation: profile -> adjusted query -> retrieval -> re-rank.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger

from shared.config import Settings, get_settings
from shared.errors import EXPECTED_ERRORS, NoCandidates, ProfileNotFound
from shared.models import JobPosting, RankedResult, RecommendationResponse, UserProfile

from .cancellation import CancellationToken
from .embedding_store import EmbeddingStore
from .preferences import PreferenceAdjuster
from .reranker import LLMReRanker, RerankItem
from .retriever import CandidateRetriever, Retrieval

MODE_LLM = "llm"
MODE_LLM_ONLY = "llm-only"
MODE_HYBRID = "hybrid"
MODES = (MODE_LLM, MODE_LLM_ONLY, MODE_HYBRID)


@dataclass
class MatchReport:
    """Results of one match run plus what happened along the way."""

    results: list[RankedResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    candidates_considered: int = 0
    candidates_retrieved: int = 0


def _min_max(values: Sequence[float]) -> tuple[float, float]:
    return min(values), max(values)


def hybrid_scores(
    retrieval: Retrieval,
    like_counts: dict[str, int],
    similarity_weight: float = 0.7,
    popularity_weight: float = 0.3,
) -> list[tuple[JobPosting, float]]:
    """
    Blend inverted, min-max normalized distance with normalized like counts.

    A flat distance range counts as full similarity, a flat like range as no
    popularity. Sorted by score descending, then job ID.
    """
    if not retrieval.candidates:
        return []

    distances = [distance for _, distance in retrieval.candidates]
    likes = [like_counts.get(job.id, 0) for job, _ in retrieval.candidates]
    min_dist, max_dist = _min_max(distances)
    min_like, max_like = _min_max(likes)

    scored = []
    for (job, distance), like in zip(retrieval.candidates, likes):
        similarity = 1 - (distance - min_dist) / (max_dist - min_dist) if max_dist > min_dist else 1.0
        popularity = (like - min_like) / (max_like - min_like) if max_like > min_like else 0.0
        scored.append((job, similarity_weight * similarity + popularity_weight * popularity))

    scored.sort(key=lambda item: (-item[1], item[0].id))
    return scored


class RecommendationOrchestrator:
    """Composes the embedding store, adjuster, retriever and re-ranker."""

    def __init__(
        self,
        db,
        chat_provider=None,
        embedder=None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.store = EmbeddingStore(db, embedder=embedder, settings=self.settings)
        self.adjuster = PreferenceAdjuster(db, settings=self.settings)
        self.retriever = CandidateRetriever(db, settings=self.settings)
        self.reranker = LLMReRanker(chat_provider) if chat_provider is not None else None

    # -------------------------------------------------------------------------
    # Shared steps
    # -------------------------------------------------------------------------

    async def _load_profile(self, user_id: str) -> UserProfile:
        profile = await self.db.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound(f"No profile for user {user_id}")
        return profile

    async def _retrieve(self, user_id: str, report: MatchReport) -> tuple[UserProfile, Retrieval]:
        """Steps 1-6: profile, embeddings, feedback, adjustment, retrieval."""
        profile = await self._load_profile(user_id)
        base_skill, base_summary = self.store.require_embeddings(profile)

        feedback = await self.db.get_feedback(user_id)
        exclude_ids = {f.job_id for f in feedback}
        liked_ids = await self.db.get_liked_job_ids(user_id)

        adjusted = await self.adjuster.adjust(base_skill, base_summary, liked_ids)
        report.warnings.extend(adjusted.warnings)

        retrieval = await self.retriever.retrieve(
            adjusted.skill,
            adjusted.summary,
            exclude_ids,
            self.settings.candidate_pool_size,
        )
        report.candidates_considered = retrieval.considered
        report.candidates_retrieved = len(retrieval)

        if not retrieval.candidates:
            raise NoCandidates(
                "No relevant jobs found. Try broadening your profile or rating more jobs."
            )
        return profile, retrieval

    def _require_reranker(self) -> LLMReRanker:
        if self.reranker is None:
            raise RuntimeError("No chat provider configured for LLM re-ranking")
        return self.reranker

    @staticmethod
    def _join(
        ranked: Sequence[RerankItem], jobs: Sequence[JobPosting], report: MatchReport
    ) -> list[RankedResult]:
        """Attach full job records to re-ranked IDs, dropping failed joins."""
        by_id = {job.id: job for job in jobs}
        results = []
        for item in ranked:
            job = by_id.get(item.id)
            if job is None:
                message = f"Re-ranked job {item.id} has no matching job record; dropping it"
                logger.warning(message)
                report.warnings.append(message)
                continue
            results.append(RankedResult.from_job(job, score=item.score, reason=item.reason))
        return results

    # -------------------------------------------------------------------------
    # Match modes
    # -------------------------------------------------------------------------

    async def match(self, user_id: str, token: Optional[CancellationToken] = None) -> MatchReport:
        """
        Vector retrieval followed by LLM re-ranking.

        Raises:
            ProfileNotFound, EmbeddingsNotReady, NoCandidates,
            LLMParseFailure, UpstreamProviderError, RequestCancelled
        """
        reranker = self._require_reranker()
        report = MatchReport()
        profile, retrieval = await self._retrieve(user_id, report)

        shortlist = retrieval.jobs[: self.settings.llm_input_limit]
        # The LLM judges the stated profile; the adjusted vectors only steer retrieval.
        ranked = await reranker.rerank(
            profile,
            [job.to_candidate() for job in shortlist],
            self.settings.max_results,
            token=token,
        )

        report.results = self._join(ranked, retrieval.jobs, report)
        logger.info(f"Matched user {user_id}: {len(report.results)} recommendations")
        return report

    async def match_llm_only(
        self, user_id: str, token: Optional[CancellationToken] = None
    ) -> MatchReport:
        """
        Fallback without vector retrieval: send a bounded batch of unrated
        jobs straight to the re-ranker.
        """
        reranker = self._require_reranker()
        report = MatchReport()
        profile = await self._load_profile(user_id)

        jobs = await self.db.get_unrated_jobs(user_id, self.settings.llm_only_batch_size)
        report.candidates_considered = len(jobs)
        report.candidates_retrieved = len(jobs)
        if not jobs:
            raise NoCandidates("No unrated jobs left to recommend.")

        ranked = await reranker.rerank(
            profile,
            [job.to_candidate() for job in jobs],
            self.settings.max_results,
            token=token,
        )
        report.results = self._join(ranked, jobs, report)
        logger.info(f"Matched user {user_id} (LLM only): {len(report.results)} recommendations")
        return report

    async def match_hybrid(self, user_id: str) -> MatchReport:
        """Fallback without an LLM: vector similarity blended with job popularity."""
        report = MatchReport()
        _, retrieval = await self._retrieve(user_id, report)

        like_counts = await self.db.get_like_counts(job.id for job in retrieval.jobs)
        scored = hybrid_scores(
            retrieval,
            like_counts,
            similarity_weight=self.settings.hybrid_similarity_weight,
            popularity_weight=self.settings.hybrid_popularity_weight,
        )
        report.results = [
            RankedResult.from_job(job, score=round(score, 6))
            for job, score in scored[: self.settings.max_results]
        ]
        logger.info(f"Matched user {user_id} (hybrid): {len(report.results)} recommendations")
        return report

    async def get_recommendations(
        self,
        user_id: str,
        mode: str = MODE_LLM,
        token: Optional[CancellationToken] = None,
    ) -> RecommendationResponse:
        """
        Run a match and return a typed response.

        Business states and provider failures become ``success=False`` with a
        reason code and no results. Data-corruption errors (DimensionMismatch,
        FormatError) propagate.
        """
        if mode not in MODES:
            raise ValueError(f"Unknown match mode: {mode}")

        try:
            if mode == MODE_LLM:
                report = await self.match(user_id, token=token)
            elif mode == MODE_LLM_ONLY:
                report = await self.match_llm_only(user_id, token=token)
            else:
                report = await self.match_hybrid(user_id)
        except EXPECTED_ERRORS as e:
            logger.warning(f"No recommendations for user {user_id}: {e.code} ({e.message})")
            return RecommendationResponse(success=False, reason_code=e.code, message=e.message)

        return RecommendationResponse(results=report.results, warnings=report.warnings)

    # -------------------------------------------------------------------------
    # Feedback
    # -------------------------------------------------------------------------

    async def record_feedback(self, user_id: str, job_id: str, liked: bool) -> None:
        """Store a like/dislike; it replaces any earlier rating of the job."""
        await self.db.upsert_feedback(user_id, str(job_id), liked)
        logger.info(f"Recorded {'like' if liked else 'dislike'} of job {job_id} by user {user_id}")

    async def liked_jobs(self, user_id: str) -> list[JobPosting]:
        """Jobs the user liked, for display."""
        liked_ids = await self.db.get_liked_job_ids(user_id)
        if not liked_ids:
            return []
        jobs = await self.db.get_jobs_by_ids(liked_ids)
        return sorted(jobs, key=lambda job: job.id)
