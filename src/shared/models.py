"""
Pydantic models for profiles, job postings, feedback and ranked results.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CareerLevel(str, Enum):
    """Career level estimated from the résumé."""

    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    STAFF = "staff"


class Experience(BaseModel):
    """Work experience entry."""

    title: str = Field(..., description="Job title")
    company: str = Field(..., description="Company name")
    start_date: str = Field(default="", description="Start date (YYYY-MM)")
    end_date: str = Field(default="", description="End date (YYYY-MM or 'Present')")
    duration_months: int = Field(default=0, ge=0)
    responsibilities: list[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    """Structured profile derived from a résumé. Replaced as a whole on re-upload."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: str = Field(..., description="Opaque user ID")
    skills: list[str] = Field(default_factory=list)
    experience: list[Experience] = Field(default_factory=list)
    total_experience_years: float = Field(default=0.0, ge=0)
    career_level: CareerLevel = Field(default=CareerLevel.ENTRY)
    category: str = Field(default="")
    summary: str = Field(default="")

    # Embeddings (computed after résumé analysis)
    skill_embedding: Optional[list[float]] = Field(default=None)
    summary_embedding: Optional[list[float]] = Field(default=None)

    @property
    def career_level_value(self) -> str:
        return getattr(self.career_level, "value", self.career_level)

    @property
    def skills_text(self) -> str:
        """Text embedded for the skill vector."""
        return ", ".join(self.skills)

    def to_context_string(self) -> str:
        """Render the stated profile for an LLM prompt."""
        lines = [
            f"**Career Level:** {self.career_level_value}",
            f"**Category:** {self.category}",
            f"**Total Experience:** {self.total_experience_years} years",
            "",
            "**Skills:** " + (", ".join(self.skills) or "n/a"),
            "",
            "**Experience:**",
        ]
        for exp in self.experience:
            period = f"{exp.start_date} - {exp.end_date}".strip(" -")
            lines.append(f"- {exp.title} at {exp.company} ({period})")
            for item in exp.responsibilities:
                lines.append(f"  - {item}")
        lines.extend(["", "**Summary:**", self.summary])
        return "\n".join(lines)


class JobPosting(BaseModel):
    """Enriched job posting. Read-only for the recommendation engine."""

    id: str = Field(..., description="Job posting ID")
    title: str = Field(default="")
    location: Optional[str] = Field(default=None)
    compensation: Optional[str] = Field(default=None)
    summary: Optional[str] = Field(default=None)
    posting_url: Optional[str] = Field(default=None, description="Joined from job_postings")

    # Embeddings (computed by the enrichment batch)
    skill_embedding: Optional[list[float]] = Field(default=None)
    summary_embedding: Optional[list[float]] = Field(default=None)

    @property
    def has_embeddings(self) -> bool:
        return bool(self.skill_embedding) and bool(self.summary_embedding)

    def to_candidate(self) -> "CandidateJob":
        """Text-only view handed to the re-ranker."""
        return CandidateJob(
            id=self.id,
            title=self.title,
            location=self.location,
            compensation=self.compensation,
            summary=self.summary,
        )


class CandidateJob(BaseModel):
    """Job as seen by the LLM: text fields only, no embeddings."""

    id: str
    title: str = ""
    location: Optional[str] = None
    compensation: Optional[str] = None
    summary: Optional[str] = None


class Feedback(BaseModel):
    """Like/dislike of a job. One row per (user, job)."""

    user_id: str
    job_id: str
    liked: bool
    created_at: datetime = Field(default_factory=lambda: datetime.now())


class RankedResult(BaseModel):
    """Job plus score and optional rationale. Computed per request, never persisted."""

    id: str
    title: str = ""
    location: Optional[str] = None
    compensation: Optional[str] = None
    summary: Optional[str] = None
    posting_url: Optional[str] = None
    score: float
    reason: Optional[str] = None

    @classmethod
    def from_job(cls, job: JobPosting, score: float, reason: Optional[str] = None) -> "RankedResult":
        return cls(
            id=job.id,
            title=job.title,
            location=job.location,
            compensation=job.compensation,
            summary=job.summary,
            posting_url=job.posting_url,
            score=score,
            reason=reason,
        )


class RecommendationResponse(BaseModel):
    """Typed outcome of a recommendation request."""

    success: bool = True
    results: list[RankedResult] = Field(default_factory=list)
    reason_code: Optional[str] = Field(default=None, description="Error code when success is False")
    message: Optional[str] = Field(default=None)
    warnings: list[str] = Field(default_factory=list)
