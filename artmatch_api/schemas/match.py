from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class ArtworkMatch(BaseModel):
    artist_name: str = Field(..., description="Artist owning the matched artwork.")
    confidence: float = Field(..., ge=0, le=100, description="(64 - distance) / 64 * 100.")
    distance: int = Field(..., ge=0, le=64, description="Hamming distance in bits.")


class ImageMatchResult(BaseModel):
    filename: Optional[str] = Field(None, description="Uploaded file name.")
    matches: List[ArtworkMatch] = Field(
        default_factory=list,
        description="At most one match; empty when the image is unknown or undecodable.",
    )


class MatchResponse(BaseModel):
    is_known_ai_art: bool = Field(..., description="True if any uploaded image matched.")
    results: List[ImageMatchResult] = Field(..., description="One entry per uploaded image, in order.")
    message: Optional[str] = Field(None, description="Reply text naming the matched artists.")
