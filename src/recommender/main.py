"""
Recommender Service - Main entry point.
Recommends jobs for a user and records their feedback.
"""

import asyncio
import json

import click
from loguru import logger

from shared.config import get_settings
from shared.database import Database
from shared.log import setup_logging

from .orchestrator import MODE_LLM, MODES, RecommendationOrchestrator
from .providers import OpenAIChatProvider


async def recommend(user_id: str, mode: str = MODE_LLM):
    """
    Compute recommendations for one user.

    Returns:
        RecommendationResponse
    """
    settings = get_settings()

    db = Database(settings)
    await db.connect()
    chat = OpenAIChatProvider(settings)

    try:
        orchestrator = RecommendationOrchestrator(db, chat_provider=chat, settings=settings)
        return await orchestrator.get_recommendations(user_id, mode=mode)
    finally:
        await chat.close()
        await db.disconnect()


async def save_feedback(user_id: str, job_id: str, liked: bool) -> None:
    db = Database()
    await db.connect()
    try:
        await RecommendationOrchestrator(db).record_feedback(user_id, job_id, liked)
    finally:
        await db.disconnect()


async def list_liked(user_id: str):
    db = Database()
    await db.connect()
    try:
        return await RecommendationOrchestrator(db).liked_jobs(user_id)
    finally:
        await db.disconnect()


@click.group()
def main():
    """Job Recommender - hybrid vector search + LLM re-ranking."""
    setup_logging("recommender")


@main.command("recommend")
@click.option("--user-id", "-u", required=True, help="User to recommend jobs for")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(MODES),
    default=MODE_LLM,
    show_default=True,
    help="llm: vector retrieval + LLM re-rank; llm-only: LLM over unrated jobs; hybrid: no LLM",
)
@click.option("--json", "as_json", is_flag=True, help="Print the raw response as JSON")
def recommend_command(user_id: str, mode: str, as_json: bool):
    """Recommend jobs for a user."""
    response = asyncio.run(recommend(user_id, mode=mode))

    if as_json:
        click.echo(response.model_dump_json(indent=2))
        return

    if not response.success:
        click.echo(f"No recommendations available ({response.reason_code}): {response.message}")
        raise SystemExit(1)

    for i, result in enumerate(response.results, start=1):
        click.echo(f"{i}. [{result.score:.0f}] {result.title} ({result.location or 'n/a'})")
        if result.reason:
            click.echo(f"   {result.reason}")
        if result.posting_url:
            click.echo(f"   {result.posting_url}")
    for warning in response.warnings:
        logger.warning(warning)


@main.command("feedback")
@click.option("--user-id", "-u", required=True)
@click.option("--job-id", "-j", type=int, required=True, help="Numeric job posting ID")
@click.option("--liked/--disliked", required=True, help="Like or dislike the job")
def feedback_command(user_id: str, job_id: int, liked: bool):
    """Like or dislike a job (replaces any earlier rating)."""
    asyncio.run(save_feedback(user_id, str(job_id), liked))
    click.echo("Saved 👍" if liked else "Saved 👎")


@main.command("liked")
@click.option("--user-id", "-u", required=True)
def liked_command(user_id: str):
    """List the jobs a user liked."""
    jobs = asyncio.run(list_liked(user_id))
    click.echo(
        json.dumps(
            [job.model_dump(exclude={"skill_embedding", "summary_embedding"}) for job in jobs],
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
