"""
Models package for the Niti-Setu scheme retrieval service
"""

from .scheme import (
    Benefits,
    BenefitsType,
    Chunk,
    IngestResult,
    Scheme,
    SchemeFilters,
    SchemeSummary,
    SearchHit
)

from .user import (
    ChatRequest,
    ChatResponse,
    ExtractProfileRequest,
    JudgeRequest,
    JudgeResponse,
    MetricsResponse,
    RecommendRequest,
    SearchRequest,
    SearchResponse,
    UserProfile
)

__all__ = [
    # Scheme models
    "Benefits",
    "BenefitsType",
    "Chunk",
    "IngestResult",
    "Scheme",
    "SchemeFilters",
    "SchemeSummary",
    "SearchHit",

    # User / request models
    "ChatRequest",
    "ChatResponse",
    "ExtractProfileRequest",
    "JudgeRequest",
    "JudgeResponse",
    "MetricsResponse",
    "RecommendRequest",
    "SearchRequest",
    "SearchResponse",
    "UserProfile"
]
