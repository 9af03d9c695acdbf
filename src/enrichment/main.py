"""
Enrichment Service - Main entry point.
Computes embeddings for job postings that do not have them yet.
"""

import asyncio

import click
from loguru import logger

from recommender.providers import OpenAIChatProvider, OpenAIEmbeddingProvider
from shared.config import get_settings
from shared.database import Database
from shared.log import setup_logging

from .enricher import EnrichmentStats, JobEnricher


async def enrich_jobs(retry: bool = True) -> EnrichmentStats:
    """Run the enrichment batch once (with full-run retries unless disabled)."""
    settings = get_settings()

    logger.info("Starting job enrichment")

    db = Database(settings)
    await db.connect()
    chat = OpenAIChatProvider(settings)
    embedder = OpenAIEmbeddingProvider(settings)

    try:
        enricher = JobEnricher(db, chat, embedder, settings=settings)
        if retry:
            return await enricher.run_with_retries()
        return await enricher.run()
    finally:
        await chat.close()
        await embedder.close()
        await db.disconnect()


@click.command()
@click.option(
    "--no-retry",
    is_flag=True,
    help="Run a single pass without the backoff retries",
)
def main(no_retry: bool):
    """Job Enricher - Computes skill and summary embeddings for job postings."""
    setup_logging("enrichment")
    stats = asyncio.run(enrich_jobs(retry=not no_retry))
    click.echo(str(stats))


if __name__ == "__main__":
    main()
