"""
Error taxonomy for the recommendation engine.

Every error carries a stable ``code`` so the presentation layer can branch on
it without parsing messages.
"""


class RecommendationError(Exception):
    """Base class for all engine errors."""

    code = "recommendation_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ProfileNotFound(RecommendationError):
    """The user has no profile yet."""

    code = "profile_not_found"


class EmbeddingsNotReady(RecommendationError):
    """The profile exists but its embeddings have not been computed."""

    code = "embeddings_not_ready"


class NoCandidates(RecommendationError):
    """Nothing left to recommend after exclusions."""

    code = "no_candidates"


class LLMParseFailure(RecommendationError):
    """The re-ranking model returned content that does not match the schema."""

    code = "llm_parse_failure"


class UpstreamProviderError(RecommendationError):
    """Embedding or completion provider unreachable, timed out or rate-limited."""

    code = "upstream_provider_error"

    def __init__(self, message: str = "", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class RequestCancelled(RecommendationError):
    """The request was superseded by a newer one."""

    code = "cancelled"


class DimensionMismatch(RecommendationError):
    """Vectors of different lengths were combined or compared."""

    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, message: str = ""):
        super().__init__(message or f"Vector length mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class FormatError(RecommendationError):
    """A stored value could not be coerced into a numeric vector."""

    code = "format_error"


# Business states and transient failures that become typed results.
EXPECTED_ERRORS = (
    ProfileNotFound,
    EmbeddingsNotReady,
    NoCandidates,
    LLMParseFailure,
    UpstreamProviderError,
    RequestCancelled,
)
