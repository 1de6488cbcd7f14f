"""
ETL Checkpoint System
=====================
Per (artist, source) watermark: the highest post id already ingested.

Scrapes resume from the watermark. It only ever moves forward: advance()
is a single conditional upsert, so retried or concurrent calls with a
lower value never write.
"""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import db_session, get_session_factory
from .errors import PersistenceError
from .models import Checkpoint, SourceId
from .schema import scrape_checkpoints


class CheckpointStore:
    """Reads and advances scrape watermarks."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def get(self, artist_id: int, source: SourceId) -> int:
        """Watermark for (artist, source); 0 means never scraped."""
        try:
            async with db_session(self.session_factory) as session:
                result = await session.execute(
                    text("""
                        SELECT watermark FROM scrape_checkpoints
                        WHERE artist_id = :artist_id AND source = :source
                    """),
                    {"artist_id": artist_id, "source": source.value},
                )
                watermark = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not read checkpoint {artist_id}/{source.value}: {exc}") from exc
        return int(watermark) if watermark is not None else 0

    async def advance(self, artist_id: int, source: SourceId, new_watermark: int) -> bool:
        """
        Move the watermark forward.

        Returns:
            True if a row was written, False if new_watermark was not above
            the stored one.
        """
        if new_watermark <= 0:
            return False
        try:
            async with db_session(self.session_factory) as session:
                result = await session.execute(
                    text("""
                        INSERT INTO scrape_checkpoints (artist_id, source, watermark, last_run)
                        VALUES (:artist_id, :source, :watermark, CURRENT_TIMESTAMP)
                        ON CONFLICT (artist_id, source) DO UPDATE
                        SET watermark = excluded.watermark, last_run = excluded.last_run
                        WHERE scrape_checkpoints.watermark < excluded.watermark
                    """),
                    {"artist_id": artist_id, "source": source.value, "watermark": new_watermark},
                )
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not advance checkpoint {artist_id}/{source.value}: {exc}") from exc

    async def list_all(self) -> List[Checkpoint]:
        async with db_session(self.session_factory) as session:
            result = await session.execute(
                select(scrape_checkpoints).order_by(
                    scrape_checkpoints.c.artist_id, scrape_checkpoints.c.source
                )
            )
            return [
                Checkpoint(
                    artist_id=row["artist_id"],
                    source=SourceId(row["source"]),
                    watermark=row["watermark"],
                    last_run=row["last_run"],
                )
                for row in result.mappings()
            ]
