"""
Corpus Store
============
Durable artwork fingerprints and the artist registry they belong to.

Writes are idempotent: an artwork is keyed by (source, external_id) and a
second insert for the same key is a no-op, never an update.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import db_session, get_session_factory
from .errors import ArtistListError, PersistenceError
from .images.fingerprint import Fingerprint
from .models import Artist, ArtworkRecord, SearchTerm, SourceId
from .schema import artworks

logger = logging.getLogger(__name__)


class CorpusStore:
    """Reads and writes artworks and artists through short-lived sessions.

    Each call opens its own session so concurrent ingestion tasks never
    share one.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    # =========================================================================
    # Artists
    # =========================================================================

    async def list_search_terms(self) -> List[SearchTerm]:
        """Every artist name and alias, primary name first, ordered by artist."""
        try:
            async with db_session(self.session_factory) as session:
                result = await session.execute(text("""
                    SELECT artist_id, term FROM (
                        SELECT a.id AS artist_id, a.name AS term, 0 AS position
                        FROM artists a
                        UNION ALL
                        SELECT al.artist_id, al.alias AS term, al.id AS position
                        FROM artist_aliases al
                    ) terms
                    ORDER BY artist_id, position
                """))
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            raise ArtistListError(f"could not list artists: {exc}") from exc
        return [SearchTerm(artist_id=row["artist_id"], term=row["term"]) for row in rows if row["term"]]

    async def list_artists(self) -> List[Artist]:
        async with db_session(self.session_factory) as session:
            artist_rows = (await session.execute(
                text("SELECT id, name FROM artists ORDER BY id")
            )).mappings().all()
            alias_rows = (await session.execute(
                text("SELECT artist_id, alias FROM artist_aliases ORDER BY id")
            )).mappings().all()

        artists: Dict[int, Artist] = {
            row["id"]: Artist(id=row["id"], name=row["name"]) for row in artist_rows
        }
        for row in alias_rows:
            artist = artists.get(row["artist_id"])
            if artist is not None:
                artist.aliases.append(row["alias"])
        return list(artists.values())

    async def add_artist(self, name: str) -> int:
        """Register an artist (no-op if the name exists) and return its id."""
        async with db_session(self.session_factory) as session:
            await session.execute(
                text("INSERT INTO artists (name) VALUES (:name) ON CONFLICT (name) DO NOTHING"),
                {"name": name},
            )
            result = await session.execute(
                text("SELECT id FROM artists WHERE name = :name"), {"name": name}
            )
            return result.scalar_one()

    async def add_alias(self, artist_name: str, alias: str) -> bool:
        """
        Attach an alias to an artist.

        Returns:
            False if the alias is already registered.

        Raises:
            LookupError: the artist does not exist.
        """
        async with db_session(self.session_factory) as session:
            artist_id = (await session.execute(
                text("SELECT id FROM artists WHERE name = :name"), {"name": artist_name}
            )).scalar_one_or_none()
            if artist_id is None:
                raise LookupError(f"artist {artist_name!r} does not exist")

            result = await session.execute(
                text("""
                    INSERT INTO artist_aliases (artist_id, alias)
                    VALUES (:artist_id, :alias)
                    ON CONFLICT (alias) DO NOTHING
                """),
                {"artist_id": artist_id, "alias": alias},
            )
            return result.rowcount > 0

    async def delete_alias(self, alias: str) -> bool:
        async with db_session(self.session_factory) as session:
            result = await session.execute(
                text("DELETE FROM artist_aliases WHERE alias = :alias"), {"alias": alias}
            )
            return result.rowcount > 0

    # =========================================================================
    # Artworks
    # =========================================================================

    async def artwork_exists(self, source: SourceId, external_id: int) -> bool:
        try:
            async with db_session(self.session_factory) as session:
                result = await session.execute(
                    text("""
                        SELECT 1 FROM artworks
                        WHERE source = :source AND external_id = :external_id
                    """),
                    {"source": source.value, "external_id": external_id},
                )
                return result.first() is not None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"existence check failed for {source.value}/{external_id}: {exc}") from exc

    async def insert_artwork(
        self,
        *,
        source: SourceId,
        external_id: int,
        artist_id: Optional[int],
        fingerprint: Fingerprint,
        file_url: Optional[str] = None,
    ) -> bool:
        """Store a fingerprint. Returns False when (source, external_id) already existed."""
        try:
            async with db_session(self.session_factory) as session:
                result = await session.execute(
                    text("""
                        INSERT INTO artworks (source, external_id, artist_id, file_url, fingerprint)
                        VALUES (:source, :external_id, :artist_id, :file_url, :fingerprint)
                        ON CONFLICT (source, external_id) DO NOTHING
                    """),
                    {
                        "source": source.value,
                        "external_id": external_id,
                        "artist_id": artist_id,
                        "file_url": file_url,
                        "fingerprint": fingerprint.to_bytes(),
                    },
                )
                return result.rowcount > 0
        except SQLAlchemyError as exc:
            raise PersistenceError(f"insert failed for {source.value}/{external_id}: {exc}") from exc

    async def find_exact(self, fingerprint: Fingerprint) -> Optional[str]:
        """Name of an artist owning a bit-identical fingerprint, if any."""
        async with db_session(self.session_factory) as session:
            result = await session.execute(
                text("""
                    SELECT a.name AS artist_name
                    FROM artworks aw
                    JOIN artists a ON aw.artist_id = a.id
                    WHERE aw.fingerprint = :fingerprint
                    ORDER BY a.name
                    LIMIT 1
                """),
                {"fingerprint": fingerprint.to_bytes()},
            )
            return result.scalar_one_or_none()

    async def fetch_fingerprints(self) -> List[Tuple[str, bytes]]:
        """(artist_name, fingerprint) for every artwork owned by a known artist."""
        async with db_session(self.session_factory) as session:
            result = await session.execute(text("""
                SELECT a.name AS artist_name, aw.fingerprint
                FROM artworks aw
                JOIN artists a ON aw.artist_id = a.id
            """))
            return [(row["artist_name"], bytes(row["fingerprint"])) for row in result.mappings()]

    async def count_by_source(self) -> Dict[str, int]:
        async with db_session(self.session_factory) as session:
            result = await session.execute(
                text("SELECT source, COUNT(*) AS total FROM artworks GROUP BY source ORDER BY source")
            )
            return {row["source"]: row["total"] for row in result.mappings()}

    async def recent_artworks(self, limit: int = 25, offset: int = 0) -> List[ArtworkRecord]:
        """Most recently ingested artworks first."""
        async with db_session(self.session_factory) as session:
            result = await session.execute(
                select(artworks)
                .order_by(artworks.c.first_seen.desc(), artworks.c.external_id.desc())
                .limit(limit)
                .offset(offset)
            )
            return [
                ArtworkRecord(
                    source=SourceId(row["source"]),
                    external_id=row["external_id"],
                    artist_id=row["artist_id"],
                    fingerprint=Fingerprint.from_bytes(row["fingerprint"]),
                    file_url=row["file_url"],
                    first_seen=row["first_seen"],
                )
                for row in result.mappings()
            ]
