"""ETL job entry points."""

__all__ = [
    "ingest_artworks",
    "manage_artists",
]
