"""
PostgreSQL (pgvector) connection and operations using asyncpg.

Vector columns are selected as text and written from text literals, so every
read goes through ``coerce_to_vector`` and every write through
``format_vector``.
"""

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

import asyncpg
from loguru import logger

from .config import Settings, get_settings
from .errors import FormatError
from .models import Experience, Feedback, JobPosting, UserProfile
from .vectors import coerce_to_vector, format_vector

_JOB_COLUMNS = """
    j.id::text AS id,
    j.title,
    j.location,
    j.compensation,
    j.summary,
    p.posting_url,
    j.skill_embedding::text AS skill_embedding,
    j.summary_embedding::text AS summary_embedding
"""

_JOB_FROM = """
    FROM job_postings_details AS j
    LEFT JOIN job_postings AS p ON p.id::text = j.id::text
"""


def _optional_vector(raw: Any) -> Optional[list[float]]:
    if raw is None:
        return None
    return coerce_to_vector(raw)


def _parse_experience(raw: Any) -> list[Experience]:
    """Experience is jsonb; older rows stored an object keyed by index."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    if isinstance(raw, dict):
        raw = list(raw.values())
    return [Experience.model_validate(item) for item in raw]


def row_to_profile(row: Any) -> UserProfile:
    """Convert a user_profile row into a typed profile."""
    return UserProfile(
        user_id=str(row["user_id"]),
        skills=list(row["skills"] or []),
        experience=_parse_experience(row["experience"]),
        total_experience_years=float(row["total_experience_years"] or 0),
        career_level=row["career_level"],
        category=row["category"] or "",
        summary=row["summary"] or "",
        skill_embedding=_optional_vector(row["skill_embedding"]),
        summary_embedding=_optional_vector(row["summary_embedding"]),
    )


def row_to_job(row: Any) -> JobPosting:
    """Convert a job_postings_details row into a typed posting."""
    return JobPosting(
        id=str(row["id"]),
        title=row["title"] or "",
        location=row["location"],
        compensation=row["compensation"],
        summary=row["summary"],
        posting_url=row["posting_url"],
        skill_embedding=_optional_vector(row["skill_embedding"]),
        summary_embedding=_optional_vector(row["summary_embedding"]),
    )


class Database:
    """Async PostgreSQL database wrapper."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Establish the connection pool."""
        if self._pool is not None:
            return

        logger.info("Connecting to PostgreSQL")
        self._pool = await asyncpg.create_pool(
            self.settings.database_url,
            min_size=self.settings.database_pool_min_size,
            max_size=self.settings.database_pool_max_size,
        )
        logger.info("PostgreSQL connection pool established")

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool."""
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    # -------------------------------------------------------------------------
    # User Profiles
    # -------------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Get a user's profile including stored embeddings."""
        row = await self.pool.fetchrow(
            """
            SELECT user_id, skills, experience, total_experience_years,
                   career_level, category, summary,
                   skill_embedding::text AS skill_embedding,
                   summary_embedding::text AS summary_embedding
            FROM user_profile
            WHERE user_id = $1
            """,
            user_id,
        )
        return row_to_profile(row) if row else None

    async def upsert_profile(self, profile: UserProfile) -> None:
        """Insert or fully replace a user's profile."""
        await self.pool.execute(
            """
            INSERT INTO user_profile (
                user_id, skills, experience, total_experience_years,
                career_level, category, summary, skill_embedding, summary_embedding
            )
            VALUES ($1, $2::text[], $3::jsonb, $4, $5, $6, $7, $8::vector, $9::vector)
            ON CONFLICT (user_id) DO UPDATE SET
                skills = EXCLUDED.skills,
                experience = EXCLUDED.experience,
                total_experience_years = EXCLUDED.total_experience_years,
                career_level = EXCLUDED.career_level,
                category = EXCLUDED.category,
                summary = EXCLUDED.summary,
                skill_embedding = EXCLUDED.skill_embedding,
                summary_embedding = EXCLUDED.summary_embedding
            """,
            profile.user_id,
            profile.skills,
            json.dumps([exp.model_dump() for exp in profile.experience]),
            profile.total_experience_years,
            profile.career_level_value,
            profile.category,
            profile.summary,
            format_vector(profile.skill_embedding) if profile.skill_embedding else None,
            format_vector(profile.summary_embedding) if profile.summary_embedding else None,
        )

    async def update_profile_embeddings(
        self, user_id: str, skill_embedding: Sequence[float], summary_embedding: Sequence[float]
    ) -> bool:
        """Write both profile embeddings."""
        result = await self.pool.execute(
            """
            UPDATE user_profile
            SET skill_embedding = $2::vector, summary_embedding = $3::vector
            WHERE user_id = $1
            """,
            user_id,
            format_vector(skill_embedding),
            format_vector(summary_embedding),
        )
        return result.endswith(" 1")

    # -------------------------------------------------------------------------
    # Feedback
    # -------------------------------------------------------------------------

    async def get_feedback(self, user_id: str) -> list[Feedback]:
        """All likes and dislikes of a user."""
        rows = await self.pool.fetch(
            """
            SELECT user_id, job_id::text AS job_id, liked, created_at
            FROM user_job_feedback
            WHERE user_id = $1
            """,
            user_id,
        )
        return [
            Feedback(
                user_id=row["user_id"],
                job_id=row["job_id"],
                liked=row["liked"],
                created_at=row["created_at"] or datetime.now(timezone.utc),
            )
            for row in rows
        ]

    async def get_liked_job_ids(self, user_id: str) -> list[str]:
        """IDs of jobs the user liked."""
        rows = await self.pool.fetch(
            """
            SELECT job_id::text AS job_id
            FROM user_job_feedback
            WHERE user_id = $1 AND liked = true
            """,
            user_id,
        )
        return [row["job_id"] for row in rows]

    async def upsert_feedback(self, user_id: str, job_id: str, liked: bool) -> None:
        """Record a like/dislike, replacing any earlier one for the same job."""
        try:
            numeric_id = int(job_id)
        except ValueError as e:
            raise FormatError(f"Job ID must be numeric, got {job_id!r}") from e

        await self.pool.execute(
            """
            INSERT INTO user_job_feedback (user_id, job_id, liked, created_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, job_id) DO UPDATE SET
                liked = EXCLUDED.liked,
                created_at = EXCLUDED.created_at
            """,
            user_id,
            numeric_id,
            liked,
            datetime.now(timezone.utc),
        )

    async def get_like_counts(self, job_ids: Iterable[str]) -> dict[str, int]:
        """Global number of likes per job."""
        ids = list(job_ids)
        if not ids:
            return {}
        rows = await self.pool.fetch(
            """
            SELECT job_id::text AS job_id, COUNT(*) AS likes
            FROM user_job_feedback
            WHERE liked = true AND job_id::text = ANY($1::text[])
            GROUP BY job_id
            """,
            ids,
        )
        return {row["job_id"]: int(row["likes"]) for row in rows}

    # -------------------------------------------------------------------------
    # Job Postings
    # -------------------------------------------------------------------------

    async def get_jobs_by_ids(self, job_ids: Iterable[str]) -> list[JobPosting]:
        """Jobs for the given IDs (missing IDs are simply absent)."""
        ids = list(job_ids)
        if not ids:
            return []
        rows = await self.pool.fetch(
            f"SELECT {_JOB_COLUMNS} {_JOB_FROM} WHERE j.id::text = ANY($1::text[])",
            ids,
        )
        return [row_to_job(row) for row in rows]

    async def get_raw_job_embeddings(self, job_ids: Iterable[str]) -> list[dict[str, Any]]:
        """
        ``id``, ``skill_embedding`` and ``summary_embedding`` of the given jobs,
        vectors left in their stored text form so callers can decode per row.
        """
        ids = list(job_ids)
        if not ids:
            return []
        rows = await self.pool.fetch(
            """
            SELECT id::text AS id,
                   skill_embedding::text AS skill_embedding,
                   summary_embedding::text AS summary_embedding
            FROM job_postings_details
            WHERE id::text = ANY($1::text[])
            """,
            ids,
        )
        return [dict(row) for row in rows]

    async def nearest_jobs(
        self,
        query_skill: Sequence[float],
        query_summary: Sequence[float],
        exclude_ids: Iterable[str],
        k: int,
        skill_weight: float,
        summary_weight: float,
    ) -> tuple[list[tuple[JobPosting, float]], int]:
        """
        Top ``k`` embedded jobs by weighted L2 distance, ranked by pgvector.

        Returns ``([(job, distance), ...], considered)`` where ``considered``
        counts every eligible job before the limit.
        """
        rows = await self.pool.fetch(
            f"""
            SELECT {_JOB_COLUMNS},
                   $4::float8 * (j.summary_embedding <-> $2::vector)
                     + $3::float8 * (j.skill_embedding <-> $1::vector) AS distance,
                   COUNT(*) OVER () AS considered
            {_JOB_FROM}
            WHERE j.skill_embedding IS NOT NULL
              AND j.summary_embedding IS NOT NULL
              AND NOT (j.id::text = ANY($5::text[]))
            ORDER BY distance, j.id
            LIMIT $6
            """,
            format_vector(query_skill),
            format_vector(query_summary),
            skill_weight,
            summary_weight,
            list(exclude_ids),
            max(k, 0),
        )
        considered = int(rows[0]["considered"]) if rows else 0
        return [(row_to_job(row), float(row["distance"])) for row in rows], considered

    async def get_unrated_jobs(self, user_id: str, limit: int) -> list[JobPosting]:
        """Jobs the user has not rated, embeddings not required."""
        rows = await self.pool.fetch(
            f"""
            SELECT {_JOB_COLUMNS} {_JOB_FROM}
            WHERE NOT EXISTS (
                SELECT 1 FROM user_job_feedback AS f
                WHERE f.user_id = $1 AND f.job_id::text = j.id::text
            )
            ORDER BY j.id
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [row_to_job(row) for row in rows]

    async def get_jobs_missing_embeddings(self) -> list[dict[str, Any]]:
        """Raw postings the enrichment batch still has to process."""
        rows = await self.pool.fetch(
            """
            SELECT id::text AS id, title, text
            FROM job_postings_details
            WHERE summary_embedding IS NULL OR skill_embedding IS NULL
            ORDER BY id
            """
        )
        return [dict(row) for row in rows]

    async def update_job_embeddings_batch(
        self, rows: Sequence[tuple[str, Sequence[float], Sequence[float]]]
    ) -> int:
        """
        Write ``(job_id, skill_embedding, summary_embedding)`` rows in one
        transaction covering exactly this batch.
        """
        if not rows:
            return 0
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    UPDATE job_postings_details
                    SET skill_embedding = $2::vector, summary_embedding = $3::vector
                    WHERE id::text = $1
                    """,
                    [
                        (job_id, format_vector(skill), format_vector(summary))
                        for job_id, skill, summary in rows
                    ],
                )
        return len(rows)


async def get_database(settings: Optional[Settings] = None) -> Database:
    """Create and connect a database instance."""
    database = Database(settings)
    await database.connect()
    return database
