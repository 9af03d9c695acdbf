# Shared module for configuration, errors, models and database access
from .config import Settings, get_settings
from .database import Database, get_database
from .errors import (
    DimensionMismatch,
    EmbeddingsNotReady,
    FormatError,
    LLMParseFailure,
    NoCandidates,
    ProfileNotFound,
    RecommendationError,
    RequestCancelled,
    UpstreamProviderError,
)
from .models import (
    CandidateJob,
    CareerLevel,
    Experience,
    Feedback,
    JobPosting,
    RankedResult,
    RecommendationResponse,
    UserProfile,
)

__all__ = [
    "Settings",
    "get_settings",
    "Database",
    "get_database",
    "RecommendationError",
    "ProfileNotFound",
    "EmbeddingsNotReady",
    "NoCandidates",
    "LLMParseFailure",
    "UpstreamProviderError",
    "RequestCancelled",
    "DimensionMismatch",
    "FormatError",
    "CandidateJob",
    "CareerLevel",
    "Experience",
    "Feedback",
    "JobPosting",
    "RankedResult",
    "RecommendationResponse",
    "UserProfile",
]
