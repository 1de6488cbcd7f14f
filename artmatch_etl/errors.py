"""
Ingestion error taxonomy.

Per-item and per-page errors are counted and logged by the pipeline;
only ArtistListError aborts a pass.
"""
from __future__ import annotations


class IngestionError(Exception):
    """Base exception for corpus ingestion and matching errors."""
    pass


class TransportError(IngestionError):
    """Network or HTTP failure talking to a source or downloading an image."""
    pass


class DecodeError(IngestionError):
    """Response body or image bytes could not be decoded."""
    pass


class PersistenceError(IngestionError):
    """Corpus or checkpoint write/read failed."""
    pass


class ArtistListError(IngestionError):
    """Artists could not be enumerated at the start of a pass."""
    pass
