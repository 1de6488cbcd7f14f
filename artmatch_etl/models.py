from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .images.fingerprint import Fingerprint


class SourceId(str, Enum):
    """Supported image boards."""

    GELBOORU = "gelbooru"
    DANBOORU = "danbooru"
    E621 = "e621"


@dataclass(frozen=True)
class SearchTerm:
    """One tag to scrape; aliases share their artist's id."""
    artist_id: int
    term: str


@dataclass
class Artist:
    id: int
    name: str
    aliases: List[str] = field(default_factory=list)

    @property
    def search_terms(self) -> List[str]:
        return [self.name, *self.aliases]


@dataclass(frozen=True)
class ArtworkRecord:
    source: SourceId
    external_id: int
    artist_id: Optional[int]
    fingerprint: Fingerprint
    file_url: Optional[str] = None
    first_seen: Optional[datetime] = None


@dataclass(frozen=True)
class Checkpoint:
    artist_id: int
    source: SourceId
    watermark: int
    last_run: Optional[datetime] = None


@dataclass(frozen=True)
class MatchResult:
    """A known artwork matched by an inbound image. Never persisted."""
    artist_name: str
    confidence: float
    distance: int
