import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from artmatch_etl.checkpoint import CheckpointStore
from artmatch_etl.corpus import CorpusStore
from artmatch_etl.images.matcher import CorpusMatcher

from .config import settings
from .db import get_db, get_session_factory

api_key_header = APIKeyHeader(name='X-API-Key', auto_error=False)


@dataclass
class PaginationParams:
    limit: int
    offset: int


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def require_api_key(api_key: Optional[str] = Depends(api_key_header)) -> Optional[str]:
    """Guard for match and corpus routes; open when no keys are configured."""
    if not settings.api_keys:
        return api_key
    if api_key is None or not any(secrets.compare_digest(api_key, key) for key in settings.api_keys):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Unauthorized')
    return api_key


def get_corpus_store() -> CorpusStore:
    return CorpusStore(get_session_factory())


def get_checkpoint_store() -> CheckpointStore:
    return CheckpointStore(get_session_factory())


def get_matcher(store: CorpusStore = Depends(get_corpus_store)) -> CorpusMatcher:
    return CorpusMatcher(store)


async def pagination_params(
    limit: Optional[int] = Query(None, ge=1, description='Rows per page, capped at max_page_size.'),
    offset: int = Query(0, ge=0),
) -> PaginationParams:
    return PaginationParams(
        limit=min(limit or settings.default_page_size, settings.max_page_size),
        offset=offset,
    )
