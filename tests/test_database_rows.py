import json

import pytest

from shared.database import Database, row_to_job, row_to_profile
from shared.errors import FormatError

EXPERIENCE = {"title": "Engineer", "company": "Acme", "duration_months": 12}


def profile_row(**overrides):
    row = {
        "user_id": "user-1",
        "skills": ["Python"],
        "experience": json.dumps([EXPERIENCE]),
        "total_experience_years": 1,
        "career_level": "mid",
        "category": None,
        "summary": "Engineer",
        "skill_embedding": "[1,0,0]",
        "summary_embedding": "[0,1,0]",
    }
    row.update(overrides)
    return row


def job_row(**overrides):
    row = {
        "id": 17,
        "title": None,
        "location": "Berlin",
        "compensation": None,
        "summary": "Backend role",
        "posting_url": "https://jobs.example.com/17",
        "skill_embedding": "[0.5,0.5]",
        "summary_embedding": None,
    }
    row.update(overrides)
    return row


def test_profile_row_with_text_vectors():
    profile = row_to_profile(profile_row())

    assert profile.skill_embedding == [1.0, 0.0, 0.0]
    assert profile.summary_embedding == [0.0, 1.0, 0.0]
    assert profile.career_level == "mid"
    assert profile.category == ""
    assert profile.experience[0].company == "Acme"


def test_profile_row_with_index_keyed_experience():
    profile = row_to_profile(profile_row(experience={"0": EXPERIENCE, "1": EXPERIENCE}))

    assert len(profile.experience) == 2


def test_profile_row_without_embeddings():
    profile = row_to_profile(profile_row(skill_embedding=None, summary_embedding=None, experience=None))

    assert profile.skill_embedding is None
    assert profile.experience == []


def test_job_row_coerces_id_and_vectors():
    job = row_to_job(job_row())

    assert job.id == "17"
    assert job.title == ""
    assert job.skill_embedding == [0.5, 0.5]
    assert job.summary_embedding is None
    assert not job.has_embeddings


def test_unparseable_vector_raises_format_error():
    with pytest.raises(FormatError):
        row_to_job(job_row(skill_embedding="[0.5,oops]"))


class RecordingPool:
    """Stands in for an asyncpg pool; returns canned rows and records calls."""

    def __init__(self, rows=()):
        self.rows = list(rows)
        self.calls = []

    async def execute(self, query, *args):
        self.calls.append((query, args))
        return "INSERT 0 1"

    async def fetch(self, query, *args):
        self.calls.append((query, args))
        return self.rows


def connected(settings, pool) -> Database:
    database = Database(settings)
    database._pool = pool
    return database


async def test_upsert_feedback_binds_numeric_job_id(settings):
    pool = RecordingPool()

    await connected(settings, pool).upsert_feedback("user-1", "123", True)

    _, args = pool.calls[0]
    assert args[:3] == ("user-1", 123, True)


async def test_upsert_feedback_rejects_non_numeric_job_id(settings):
    pool = RecordingPool()

    with pytest.raises(FormatError):
        await connected(settings, pool).upsert_feedback("user-1", "j-12", True)
    assert pool.calls == []


async def test_nearest_jobs_ranks_in_sql(settings):
    pool = RecordingPool([dict(job_row(), distance=0.25, considered=12)])

    candidates, considered = await connected(settings, pool).nearest_jobs(
        [1.0, 0.0], [0.0, 1.0], {"9"}, 5, skill_weight=0.4, summary_weight=0.6
    )

    query, args = pool.calls[0]
    assert "<->" in query
    assert "ORDER BY distance, j.id" in query
    assert args == ("[1.0,0.0]", "[0.0,1.0]", 0.4, 0.6, ["9"], 5)
    assert [(job.id, distance) for job, distance in candidates] == [("17", 0.25)]
    assert considered == 12


async def test_nearest_jobs_with_no_rows(settings):
    candidates, considered = await connected(settings, RecordingPool()).nearest_jobs(
        [1.0], [1.0], set(), 5, skill_weight=0.4, summary_weight=0.6
    )

    assert candidates == []
    assert considered == 0


async def test_raw_job_embeddings_are_not_decoded(settings):
    row = {"id": "5", "skill_embedding": "[0,oops]", "summary_embedding": None}
    pool = RecordingPool([row])

    rows = await connected(settings, pool).get_raw_job_embeddings(["5"])

    assert rows == [row]


def test_database_decodes_with_shared_codec():
    import shared.database

    assert shared.database.coerce_to_vector.__module__ == "shared.vectors"
    assert shared.database.format_vector.__module__ == "shared.vectors"
