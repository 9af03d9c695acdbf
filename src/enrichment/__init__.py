"""
Enrichment Service - offline job embedding batch.

Extracts skills and summaries from raw postings with an LLM and stores
their normalized embeddings for retrieval.
"""

from .enricher import EnrichmentIncomplete, EnrichmentStats, JobEnricher

__all__ = ["EnrichmentIncomplete", "EnrichmentStats", "JobEnricher"]
