"""
Shared fixtures: in-memory database and providers.
"""

import pytest
from loguru import logger

from shared.config import Settings
from shared.models import JobPosting, UserProfile

from .helpers import BASE, DIM, FakeDatabase, unit


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        embedding_dimensions=DIM,
        candidate_pool_size=50,
        llm_input_limit=30,
        max_results=7,
        llm_only_batch_size=30,
        provider_max_attempts=3,
        provider_backoff_base_seconds=0.0,
        enrichment_batch_size=8,
        enrichment_max_concurrent_batches=5,
        enrichment_batch_delay_seconds=0.0,
        enrichment_retry_delays="0,0,0",
    )


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        user_id="user-1",
        skills=["Python", "PostgreSQL", "FastAPI"],
        experience=[
            {
                "title": "Backend Engineer",
                "company": "Acme",
                "start_date": "2020-01",
                "end_date": "Present",
                "duration_months": 60,
                "responsibilities": ["Built payment APIs"],
            }
        ],
        total_experience_years=5.0,
        career_level="senior",
        category="engineer/developer",
        summary="Backend engineer focused on APIs and data stores.",
        skill_embedding=list(BASE),
        summary_embedding=list(BASE),
    )


@pytest.fixture
def corpus(db: FakeDatabase, profile: UserProfile) -> FakeDatabase:
    """
    Ten jobs j00..j09. j00..j07 have embeddings drifting away from BASE as
    the index grows; j08 and j09 have none.
    """
    db.profiles[profile.user_id] = profile
    for i in range(10):
        job_id = f"j{i:02d}"
        embedded = i < 8
        vector = unit(1.0, 0.1 * i, 0.0, 0.0) if embedded else None
        db.jobs[job_id] = JobPosting(
            id=job_id,
            title=f"Job {i}",
            location="Remote",
            summary=f"Summary of job {i}",
            posting_url=f"https://jobs.example.com/{job_id}",
            skill_embedding=vector,
            summary_embedding=list(vector) if vector else None,
        )
    return db


@pytest.fixture
def log_records():
    """Capture loguru records as (level, message) pairs."""
    records: list[tuple[str, str]] = []
    handler_id = logger.add(
        lambda message: records.append((message.record["level"].name, message.record["message"])),
        level="DEBUG",
    )
    yield records
    logger.remove(handler_id)
