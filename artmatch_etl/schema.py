"""
ARTMATCH table definitions.

The DML in corpus.py / checkpoint.py is raw SQL against these tables; the
ON CONFLICT clauses it uses are valid on both PostgreSQL and SQLite.
"""
from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.ext.asyncio import AsyncEngine

# SQLite only auto-increments INTEGER PRIMARY KEY columns
_Id = BigInteger().with_variant(Integer(), "sqlite")

metadata = MetaData()

artists = Table(
    "artists",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

artist_aliases = Table(
    "artist_aliases",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("artist_id", _Id, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
    Column("alias", Text, nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

artworks = Table(
    "artworks",
    metadata,
    Column("source", String(32), nullable=False),
    Column("external_id", BigInteger, nullable=False),
    Column("artist_id", _Id, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True),
    Column("file_url", Text, nullable=True),
    Column("fingerprint", LargeBinary(8), nullable=False),
    Column("first_seen", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("source", "external_id", name="uq_artworks_source_external_id"),
    Index("ix_artworks_fingerprint", "fingerprint"),
)

scrape_checkpoints = Table(
    "scrape_checkpoints",
    metadata,
    Column("artist_id", _Id, ForeignKey("artists.id", ondelete="CASCADE"), nullable=False),
    Column("source", String(32), nullable=False),
    Column("watermark", BigInteger, nullable=False, default=0),
    Column("last_run", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("artist_id", "source", name="uq_scrape_checkpoints_artist_source"),
)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all ARTMATCH tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
