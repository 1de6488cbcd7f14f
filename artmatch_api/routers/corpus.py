"""
Corpus Router
=============
Read-only view of the corpus and ingestion progress.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from artmatch_etl.checkpoint import CheckpointStore
from artmatch_etl.corpus import CorpusStore

from ..dependencies import (
    PaginationParams,
    get_checkpoint_store,
    get_corpus_store,
    pagination_params,
    require_api_key,
)
from ..schemas.corpus import (
    ArtistListResponse,
    ArtistResponse,
    ArtworkListResponse,
    ArtworkResponse,
    CheckpointListResponse,
    CheckpointResponse,
    CorpusStatsResponse,
    PageInfo,
)

router = APIRouter(prefix="/corpus", tags=["corpus"], dependencies=[Depends(require_api_key)])


@router.get("/stats", response_model=CorpusStatsResponse)
async def corpus_stats(store: CorpusStore = Depends(get_corpus_store)) -> CorpusStatsResponse:
    counts = await store.count_by_source()
    artists = await store.list_artists()
    return CorpusStatsResponse(
        total_artworks=sum(counts.values()),
        artworks_by_source=counts,
        total_artists=len(artists),
    )


@router.get("/artists", response_model=ArtistListResponse)
async def list_artists(store: CorpusStore = Depends(get_corpus_store)) -> ArtistListResponse:
    artists = await store.list_artists()
    return ArtistListResponse(
        data=[ArtistResponse(id=a.id, name=a.name, aliases=a.aliases) for a in artists]
    )


@router.get("/checkpoints", response_model=CheckpointListResponse)
async def list_checkpoints(
    checkpoints: CheckpointStore = Depends(get_checkpoint_store),
) -> CheckpointListResponse:
    """Scrape watermark per artist and source."""
    rows = await checkpoints.list_all()
    return CheckpointListResponse(
        data=[
            CheckpointResponse(
                artist_id=row.artist_id,
                source=row.source.value,
                watermark=row.watermark,
                last_run=row.last_run,
            )
            for row in rows
        ]
    )


@router.get("/artworks", response_model=ArtworkListResponse)
async def list_recent_artworks(
    store: CorpusStore = Depends(get_corpus_store),
    pagination: PaginationParams = Depends(pagination_params),
) -> ArtworkListResponse:
    """Most recently ingested artworks first."""
    rows = await store.recent_artworks(limit=pagination.limit, offset=pagination.offset)
    return ArtworkListResponse(
        data=[
            ArtworkResponse(
                source=row.source.value,
                external_id=row.external_id,
                artist_id=row.artist_id,
                fingerprint=str(row.fingerprint),
                file_url=row.file_url,
                first_seen=row.first_seen,
            )
            for row in rows
        ],
        pagination=PageInfo(limit=pagination.limit, offset=pagination.offset, returned=len(rows)),
    )
