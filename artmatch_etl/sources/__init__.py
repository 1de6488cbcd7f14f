"""Source adapters for ingestion jobs."""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Type

import httpx

from ..models import SourceId
from .base import (
    CursorToken,
    OffsetToken,
    PageNumberToken,
    PageToken,
    Post,
    PostPage,
    SourceAdapter,
)
from .danbooru import DanbooruAdapter
from .e621 import E621Adapter
from .gelbooru import GelbooruAdapter

ADAPTERS: Dict[SourceId, Type[SourceAdapter]] = {
    SourceId.GELBOORU: GelbooruAdapter,
    SourceId.DANBOORU: DanbooruAdapter,
    SourceId.E621: E621Adapter,
}


def build_adapters(
    client: httpx.AsyncClient,
    sources: Iterable[str],
    page_size: Optional[int] = None,
) -> Dict[SourceId, SourceAdapter]:
    adapters: Dict[SourceId, SourceAdapter] = {}
    for name in sources:
        source = SourceId(name)
        adapters[source] = ADAPTERS[source](client, page_size=page_size)
    return adapters


__all__ = [
    "ADAPTERS",
    "CursorToken",
    "DanbooruAdapter",
    "E621Adapter",
    "GelbooruAdapter",
    "OffsetToken",
    "PageNumberToken",
    "PageToken",
    "Post",
    "PostPage",
    "SourceAdapter",
    "build_adapters",
]
