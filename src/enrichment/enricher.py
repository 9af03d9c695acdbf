"""
Offline job-embedding enrichment.

For every posting missing an embedding: extract skills and a summary with the
LLM, embed both, and write each batch of postings in its own transaction.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, ValidationError

from recommender.embedding_store import EmbeddingStore
from recommender.vector_math import Vector, normalize
from shared.config import Settings, get_settings
from shared.errors import DimensionMismatch, FormatError, LLMParseFailure, UpstreamProviderError

JOB_EXTRACTION_SCHEMA_NAME = "analyze_job"

JOB_EXTRACTION_SCHEMA = {
    "type": "object",
    "properties": {
        "skills": {
            "type": "array",
            "items": {"type": "string"},
            "description": "List of explicitly mentioned skills.",
        },
        "summary": {"type": "string", "description": "Concise summary of the job description"},
    },
    "required": ["skills", "summary"],
    "additionalProperties": False,
}

JOB_EXTRACTION_PROMPT = """Extract the following from the job listing:

- skills: List all explicitly mentioned hard skills (technologies, tools, frameworks). Exclude soft skills.
- summary: Provide a concise 2-5 sentence summary capturing the role's main purpose and key responsibilities.

Do not interpret or embellish the listing. Ensure the output strictly adheres to the provided JSON schema."""

# Errors that mean corrupted data or a bug; never retried.
FATAL_ERRORS = (DimensionMismatch, FormatError)


class JobExtraction(BaseModel):
    """Structured fields extracted from a raw listing."""

    skills: list[str]
    summary: str


class EnrichmentIncomplete(RuntimeError):
    """At least one batch failed; committed batches stay committed."""

    def __init__(self, failed_batches: int, total_batches: int):
        super().__init__(f"{failed_batches} of {total_batches} enrichment batches failed")
        self.failed_batches = failed_batches
        self.total_batches = total_batches


@dataclass
class EnrichmentStats:
    """Statistics for one enrichment run."""

    postings_selected: int = 0
    postings_enriched: int = 0
    batches_committed: int = 0
    batches_failed: int = 0
    start_time: float = field(default_factory=time.time)

    @property
    def duration_seconds(self) -> float:
        return time.time() - self.start_time

    def __str__(self) -> str:
        return (
            f"Selected: {self.postings_selected}, Enriched: {self.postings_enriched}, "
            f"Batches: {self.batches_committed} committed / {self.batches_failed} failed, "
            f"Duration: {self.duration_seconds:.1f}s"
        )


def chunk(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive lists of at most ``size``."""
    if size <= 0:
        raise ValueError("Batch size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]


class JobEnricher:
    """Bounded-concurrency enrichment of job postings."""

    def __init__(
        self,
        db,
        chat_provider,
        embedder,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.db = db
        self.chat = chat_provider
        self.embedder = embedder
        self.store = EmbeddingStore(db, embedder=embedder, settings=self.settings)

    async def extract(self, job: dict[str, Any]) -> JobExtraction:
        """Ask the LLM for skills and summary of one raw posting."""
        content = await self.chat.complete(
            JOB_EXTRACTION_PROMPT,
            f"Title: {job.get('title') or ''}\nDescription: {job.get('text') or ''}",
            JOB_EXTRACTION_SCHEMA_NAME,
            JOB_EXTRACTION_SCHEMA,
            temperature=0.2,
        )
        try:
            return JobExtraction.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            raise LLMParseFailure(f"Could not parse job data for {job.get('id')}: {e}") from e

    async def process_job(self, job: dict[str, Any]) -> tuple[str, Vector, Vector]:
        """Return ``(job_id, skill_embedding, summary_embedding)``, both normalized."""
        extraction = await self.extract(job)
        summary_raw, skill_raw = await asyncio.gather(
            self.embedder.embed(extraction.summary),
            self.embedder.embed(", ".join(extraction.skills)),
        )
        return str(job["id"]), normalize(skill_raw), normalize(summary_raw)

    async def process_batch(self, batch: list[dict[str, Any]]) -> int:
        """Enrich one batch and commit it atomically."""
        rows = await asyncio.gather(*(self.process_job(job) for job in batch))
        written = await self.store.save_job_embeddings(list(rows))
        logger.info(f"Updated batch IDs: [{', '.join(row[0] for row in rows)}]")
        if self.settings.enrichment_batch_delay_seconds > 0:
            await asyncio.sleep(self.settings.enrichment_batch_delay_seconds)
        return written

    async def run(self) -> EnrichmentStats:
        """
        One full pass over postings missing embeddings.

        Raises:
            EnrichmentIncomplete: some batches failed (after all others finished)
        """
        stats = EnrichmentStats()
        jobs = await self.db.get_jobs_missing_embeddings()
        stats.postings_selected = len(jobs)
        logger.info(f"Total entries to process: {len(jobs)}")
        if not jobs:
            return stats

        batches = chunk(jobs, self.settings.enrichment_batch_size)
        semaphore = asyncio.Semaphore(self.settings.enrichment_max_concurrent_batches)

        async def limited(batch: list[dict[str, Any]]) -> int:
            async with semaphore:
                return await self.process_batch(batch)

        outcomes = await asyncio.gather(*(limited(b) for b in batches), return_exceptions=True)

        for batch, outcome in zip(batches, outcomes):
            if isinstance(outcome, FATAL_ERRORS):
                raise outcome
            if isinstance(outcome, BaseException):
                stats.batches_failed += 1
                ids = ", ".join(str(job["id"]) for job in batch)
                logger.error(f"Batch [{ids}] failed: {outcome}")
            else:
                stats.batches_committed += 1
                stats.postings_enriched += outcome

        logger.info(f"Enrichment run complete: {stats}")
        if stats.batches_failed:
            raise EnrichmentIncomplete(stats.batches_failed, len(batches))
        return stats

    async def run_with_retries(self) -> EnrichmentStats:
        """
        A full run, then one more full run after each configured delay until
        a run succeeds. Each retry only sees postings still missing embeddings.
        """
        delays = self.settings.enrichment_retry_delays_list
        attempt = 0
        while True:
            try:
                return await self.run()
            except (EnrichmentIncomplete, UpstreamProviderError) as e:
                if attempt >= len(delays):
                    logger.error(f"Enrichment giving up after {attempt + 1} runs: {e}")
                    raise
                delay = delays[attempt]
                attempt += 1
                logger.warning(f"Enrichment run failed ({e}), retrying in {delay}s")
                await asyncio.sleep(delay)
