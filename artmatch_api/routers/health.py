from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..dependencies import get_db_session
from ..schemas.health import HealthResponse, VersionResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _git_sha() -> Optional[str]:
    # Baked in by the image build
    return os.environ.get("GIT_SHA") or None


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db_session)) -> HealthResponse:
    """Liveness plus a corpus read; never fails, reports degraded instead."""
    artworks: Optional[int] = None
    try:
        result = await db.execute(text("SELECT COUNT(*) FROM artworks"))
        artworks = result.scalar_one()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning(f"Health check could not read the corpus: {exc}")
    return HealthResponse(
        status="ok" if artworks is not None else "degraded",
        db="ok" if artworks is not None else "error",
        artworks=artworks,
        timestamp=datetime.now(timezone.utc),
        version=settings.api_version,
        git_sha=_git_sha(),
    )


@router.get("/version", response_model=VersionResponse)
async def version() -> VersionResponse:
    return VersionResponse(version=settings.api_version, git_sha=_git_sha())
