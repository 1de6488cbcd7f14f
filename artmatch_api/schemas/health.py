from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok, or degraded when the corpus is unreachable.")
    db: str = Field(..., description="Corpus database state.")
    artworks: Optional[int] = Field(None, description="Fingerprints in the corpus.")
    timestamp: datetime = Field(..., description="UTC time of the check.")
    version: str = Field(..., description="Service version.")
    git_sha: Optional[str] = Field(None, description="Build commit, from GIT_SHA.")


class VersionResponse(BaseModel):
    service: str = "artmatch"
    version: str
    git_sha: Optional[str] = None
