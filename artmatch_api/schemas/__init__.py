from .corpus import (
    ArtistListResponse,
    ArtistResponse,
    ArtworkListResponse,
    ArtworkResponse,
    CheckpointListResponse,
    CheckpointResponse,
    CorpusStatsResponse,
    PageInfo,
)
from .health import HealthResponse, VersionResponse
from .match import ArtworkMatch, ImageMatchResult, MatchResponse

__all__ = [
    # Health
    "HealthResponse",
    "VersionResponse",
    # Matching
    "ArtworkMatch",
    "ImageMatchResult",
    "MatchResponse",
    # Corpus
    "CorpusStatsResponse",
    "ArtistResponse",
    "ArtistListResponse",
    "CheckpointResponse",
    "CheckpointListResponse",
    "ArtworkResponse",
    "ArtworkListResponse",
    "PageInfo",
]
