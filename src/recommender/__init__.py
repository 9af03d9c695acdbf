"""
Recommender Service - hybrid vector + LLM job recommendations.

Retrieves the nearest job postings to a user's (preference-adjusted)
profile embeddings and lets an LLM re-rank and justify the shortlist.
"""

from .cancellation import CancellationScope, CancellationToken
from .embedding_store import EmbeddingStore
from .orchestrator import MatchReport, RecommendationOrchestrator
from .preferences import AdjustedVectors, PreferenceAdjuster
from .reranker import LLMReRanker, RerankItem
from .retriever import CandidateRetriever, Retrieval

__all__ = [
    "AdjustedVectors",
    "CancellationScope",
    "CancellationToken",
    "CandidateRetriever",
    "EmbeddingStore",
    "LLMReRanker",
    "MatchReport",
    "PreferenceAdjuster",
    "RecommendationOrchestrator",
    "RerankItem",
    "Retrieval",
]
