"""
ARTMATCH Corpus Matcher
=======================
Decides whether an inbound image is a repost of known artwork.

1. Exact fast path: a bit-identical fingerprint in the corpus is a match at
   distance 0 / confidence 100 and skips the scan.
2. Approximate fallback: every corpus fingerprint is compared with the
   query; distances below the threshold (15 of 64 bits) are candidates.
3. The candidate with the smallest distance wins, ties going to the artist
   name that sorts first.

The scan is a linear pass over an immutable numpy snapshot, split into
chunks scored on a thread pool. There is deliberately no similarity index.
"""
from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..corpus import CorpusStore
from ..errors import DecodeError
from ..models import MatchResult
from .fingerprint import HASH_BITS, Fingerprint, compute_from_bytes

logger = logging.getLogger(__name__)


def confidence_for(distance: int) -> float:
    return (HASH_BITS - distance) / HASH_BITS * 100


@dataclass(frozen=True)
class CorpusSnapshot:
    """Read-only copy of the corpus taken for one query."""
    artist_names: Tuple[str, ...]
    fingerprints: np.ndarray  # uint64, aligned with artist_names

    @classmethod
    def from_rows(cls, rows: Iterable[Tuple[str, bytes]]) -> "CorpusSnapshot":
        names: List[str] = []
        values: List[int] = []
        for artist_name, raw in rows:
            names.append(artist_name)
            values.append(Fingerprint.from_bytes(raw).value)
        return cls(artist_names=tuple(names), fingerprints=np.array(values, dtype=np.uint64))

    def __len__(self) -> int:
        return len(self.artist_names)


def _chunk_distances(query: np.uint64, chunk: np.ndarray) -> np.ndarray:
    xor = np.bitwise_xor(chunk, query)
    # 8 bytes per fingerprint; byte order does not affect the popcount
    bits = np.unpackbits(xor.astype(">u8").view(np.uint8))
    return bits.reshape(-1, HASH_BITS).sum(axis=1, dtype=np.int32)


def scan_distances(
    query: Fingerprint,
    fingerprints: np.ndarray,
    chunk_size: Optional[int] = None,
    workers: Optional[int] = None,
) -> np.ndarray:
    """Hamming distance from query to every fingerprint, in corpus order."""
    if fingerprints.size == 0:
        return np.zeros(0, dtype=np.int32)

    chunk_size = chunk_size or settings.scan_chunk_size
    target = np.uint64(query.value)
    chunks = [fingerprints[i:i + chunk_size] for i in range(0, fingerprints.size, chunk_size)]
    if len(chunks) == 1:
        return _chunk_distances(target, chunks[0])

    max_workers = workers or settings.scan_workers or os.cpu_count() or 1
    with ThreadPoolExecutor(max_workers=min(max_workers, len(chunks))) as pool:
        parts = list(pool.map(lambda chunk: _chunk_distances(target, chunk), chunks))
    return np.concatenate(parts)


def match_fingerprint(
    query: Fingerprint,
    snapshot: CorpusSnapshot,
    threshold: Optional[int] = None,
) -> List[MatchResult]:
    """
    Approximate match of one fingerprint against a snapshot.

    Returns:
        [] when no corpus entry is closer than the threshold, otherwise the
        single closest entry.
    """
    threshold = settings.match_distance_threshold if threshold is None else threshold
    distances = scan_distances(query, snapshot.fingerprints)
    candidates = np.flatnonzero(distances < threshold)
    if candidates.size == 0:
        return []

    best = min(candidates, key=lambda i: (int(distances[i]), snapshot.artist_names[i]))
    best_distance = int(distances[best])
    return [
        MatchResult(
            artist_name=snapshot.artist_names[best],
            confidence=confidence_for(best_distance),
            distance=best_distance,
        )
    ]


class CorpusMatcher:
    """
    Matches inbound images against the stored corpus. Holds no state.

    Usage:
        matcher = CorpusMatcher(CorpusStore())
        for match in await matcher.match(image_bytes):
            print(f"{match.artist_name}: {match.confidence:.2f}%")
    """

    def __init__(self, store: CorpusStore, threshold: Optional[int] = None):
        self.store = store
        self.threshold = settings.match_distance_threshold if threshold is None else threshold

    async def match_fingerprint(self, fingerprint: Fingerprint) -> List[MatchResult]:
        artist_name = await self.store.find_exact(fingerprint)
        if artist_name is not None:
            return [MatchResult(artist_name=artist_name, confidence=100.0, distance=0)]

        rows = await self.store.fetch_fingerprints()
        snapshot = CorpusSnapshot.from_rows(rows)
        return await asyncio.to_thread(match_fingerprint, fingerprint, snapshot, self.threshold)

    async def match(self, image_data: bytes) -> List[MatchResult]:
        """Match one image. Undecodable images and corpus failures produce no matches."""
        try:
            fingerprint = await asyncio.to_thread(compute_from_bytes, image_data)
        except DecodeError as exc:
            logger.warning(f"Skipping undecodable image: {exc}")
            return []
        try:
            return await self.match_fingerprint(fingerprint)
        except SQLAlchemyError as exc:
            logger.error(f"Corpus lookup failed for {fingerprint}: {exc}", exc_info=True)
            return []


def describe_matches(matches: Sequence[MatchResult]) -> Optional[str]:
    """Human-readable reply for a set of matches, or None when there are none."""
    if not matches:
        return None
    if len(matches) == 1:
        return (
            f"This message contains known AI art by {matches[0].artist_name}, "
            f"confidence is {matches[0].confidence:.2f}%."
        )
    lines = ["This message contains known AI art by:"]
    for idx, match in enumerate(matches, start=1):
        lines.append(f"{idx}. {match.artist_name}, confidence is {match.confidence:.2f}%.")
    return "\n".join(lines)
