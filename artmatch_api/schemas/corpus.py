from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CorpusStatsResponse(BaseModel):
    total_artworks: int
    artworks_by_source: Dict[str, int]
    total_artists: int


class ArtistResponse(BaseModel):
    id: int
    name: str
    aliases: List[str] = Field(default_factory=list)


class ArtistListResponse(BaseModel):
    data: List[ArtistResponse]


class CheckpointResponse(BaseModel):
    artist_id: int
    source: str
    watermark: int = Field(..., description="Highest post id already ingested.")
    last_run: Optional[datetime] = None


class CheckpointListResponse(BaseModel):
    data: List[CheckpointResponse]


class ArtworkResponse(BaseModel):
    source: str
    external_id: int
    artist_id: Optional[int] = None
    fingerprint: str = Field(..., description="16 hex digits.")
    file_url: Optional[str] = None
    first_seen: Optional[datetime] = None


class PageInfo(BaseModel):
    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)
    returned: int = Field(..., ge=0, description="Rows in this page.")


class ArtworkListResponse(BaseModel):
    data: List[ArtworkResponse]
    pagination: PageInfo
