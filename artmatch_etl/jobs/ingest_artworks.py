"""
ARTMATCH Artwork Ingestion
==========================
Incremental, checkpointed scrape of every known artist from every source.

Per artist and source:
  read watermark -> fetch page -> drop posts at or below the watermark ->
  download + fingerprint + store in batches of 5 -> next page ... ->
  advance watermark once to the highest post id seen.

- The sources of one artist are scraped concurrently; artists run one
  after another.
- A failed download, decode or insert is counted and logged; it never
  aborts the batch, the page loop or a sibling source.
- Failed posts still count as seen, so they are not retried next pass.
- Only a failure to list artists aborts the pass.

Usage:
    python -m artmatch_etl.jobs.ingest_artworks
    python -m artmatch_etl.jobs.ingest_artworks --sources gelbooru e621 --page-size 50
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..checkpoint import CheckpointStore
from ..config import settings
from ..corpus import CorpusStore
from ..errors import DecodeError, IngestionError, PersistenceError
from ..images.download import ImageDownloader
from ..images.fingerprint import compute_from_bytes
from ..models import SearchTerm, SourceId
from ..sources import Post, SourceAdapter, build_adapters

logger = logging.getLogger(__name__)


class ItemOutcome(str, Enum):
    STORED = "stored"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class ScrapeStats:
    """Tallies for one (artist, source) run."""
    source: SourceId
    artist_id: int
    search_terms: List[str] = field(default_factory=list)
    prior_watermark: int = 0
    highest_seen: int = 0
    pages_fetched: int = 0
    page_failures: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    watermark_advanced: bool = False

    def record(self, outcomes: Iterable[ItemOutcome]) -> None:
        for outcome in outcomes:
            if outcome is ItemOutcome.STORED:
                self.success_count += 1
            elif outcome is ItemOutcome.DUPLICATE:
                self.skipped_count += 1
            else:
                self.failure_count += 1


@dataclass
class SourceTotals:
    """Per-source tallies for a whole pass."""
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0

    def add(self, stats: ScrapeStats) -> None:
        self.success_count += stats.success_count
        self.failure_count += stats.failure_count
        self.skipped_count += stats.skipped_count


def _batched(items: Sequence[Post], size: int) -> Iterator[Sequence[Post]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def group_by_artist(terms: Iterable[SearchTerm]) -> Dict[int, List[str]]:
    grouped: Dict[int, List[str]] = {}
    for term in terms:
        grouped.setdefault(term.artist_id, []).append(term.term)
    return grouped


class IngestionPipeline:
    """
    Generic paged incremental scrape, instantiated over any set of source
    adapters. Adding a source only requires a new adapter.
    """

    def __init__(
        self,
        store: CorpusStore,
        checkpoints: CheckpointStore,
        adapters: Dict[SourceId, SourceAdapter],
        downloader: ImageDownloader,
        batch_size: Optional[int] = None,
    ):
        self.store = store
        self.checkpoints = checkpoints
        self.adapters = adapters
        self.downloader = downloader
        self.batch_size = batch_size or settings.batch_size

    async def process_post(self, source: SourceId, artist_id: Optional[int], post: Post) -> ItemOutcome:
        """Download, fingerprint and store one post."""
        try:
            if not post.file_url:
                raise DecodeError("post has no direct file url")
            if await self.store.artwork_exists(source, post.external_id):
                return ItemOutcome.DUPLICATE

            data = await self.downloader.download(post.file_url)
            fingerprint = await asyncio.to_thread(compute_from_bytes, data)
            inserted = await self.store.insert_artwork(
                source=source,
                external_id=post.external_id,
                artist_id=artist_id,
                fingerprint=fingerprint,
                file_url=post.file_url,
            )
        except IngestionError as exc:
            logger.warning(f"[{source.value}] post {post.external_id} failed: {exc}")
            return ItemOutcome.FAILED

        return ItemOutcome.STORED if inserted else ItemOutcome.DUPLICATE

    async def process_batch(
        self,
        source: SourceId,
        artist_id: Optional[int],
        posts: Sequence[Post],
    ) -> List[ItemOutcome]:
        """Process up to one batch concurrently; returns once every item has finished."""
        results = await asyncio.gather(
            *(self.process_post(source, artist_id, post) for post in posts),
            return_exceptions=True,
        )

        outcomes: List[ItemOutcome] = []
        for post, result in zip(posts, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    f"[{source.value}] post {post.external_id} crashed: {result}",
                    exc_info=result,
                )
                outcomes.append(ItemOutcome.FAILED)
                continue
            outcomes.append(result)
        return outcomes

    async def scrape_term(
        self,
        adapter: SourceAdapter,
        artist_id: int,
        search_term: str,
        watermark: int,
        stats: ScrapeStats,
    ) -> None:
        """Page through one search term, storing every post above the watermark."""
        source = adapter.source
        token = adapter.first_token(watermark)
        logger.info(f"[{source.value}] starting scrape for tag {search_term!r} (watermark {watermark})")

        while True:
            try:
                page = await adapter.list_posts(search_term, token, adapter.page_size)
            except IngestionError as exc:
                logger.error(f"[{source.value}] page fetch failed for {search_term!r} at {token}: {exc}")
                stats.page_failures += 1
                break

            stats.pages_fetched += 1
            stats.highest_seen = max(stats.highest_seen, page.highest_id)

            new_posts = [post for post in page.posts if post.external_id > watermark]
            reached_watermark = len(new_posts) < len(page.posts)

            for batch in _batched(new_posts, self.batch_size):
                stats.record(await self.process_batch(source, artist_id, batch))

            if not new_posts or reached_watermark or not page.has_more:
                break

            next_token = adapter.next_token(token, page)
            if next_token == token:
                break
            token = next_token
            logger.info(f"[{source.value}] scraping {search_term!r} in progress: {token}")

    async def scrape_source(
        self,
        adapter: SourceAdapter,
        artist_id: int,
        search_terms: Sequence[str],
    ) -> ScrapeStats:
        """Scrape all of an artist's names on one source and advance its checkpoint once."""
        source = adapter.source
        stats = ScrapeStats(source=source, artist_id=artist_id, search_terms=list(search_terms))

        try:
            watermark = await self.checkpoints.get(artist_id, source)
        except PersistenceError as exc:
            logger.error(f"[{source.value}] skipping artist {artist_id}: {exc}")
            return stats
        stats.prior_watermark = watermark

        for search_term in search_terms:
            await self.scrape_term(adapter, artist_id, search_term, watermark, stats)

        if stats.highest_seen > watermark:
            try:
                stats.watermark_advanced = await self.checkpoints.advance(
                    artist_id, source, stats.highest_seen
                )
            except PersistenceError as exc:
                logger.error(f"[{source.value}] checkpoint for artist {artist_id} not advanced: {exc}")

        logger.info(
            f"[{source.value}] finished artist {artist_id} ({', '.join(search_terms)}): "
            f"{stats.pages_fetched} pages ({stats.page_failures} failed), "
            f"{stats.success_count} stored, {stats.failure_count} failed, "
            f"{stats.skipped_count} already known, watermark {watermark} -> "
            f"{stats.highest_seen if stats.watermark_advanced else watermark}"
        )
        return stats

    async def ingest_artist(self, artist_id: int, search_terms: Sequence[str]) -> List[ScrapeStats]:
        """Scrape every source for one artist concurrently."""
        adapters = list(self.adapters.values())
        results = await asyncio.gather(
            *(self.scrape_source(adapter, artist_id, search_terms) for adapter in adapters),
            return_exceptions=True,
        )

        completed: List[ScrapeStats] = []
        for adapter, result in zip(adapters, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[{adapter.source.value}] scrape crashed for artist {artist_id}",
                    exc_info=result,
                )
                continue
            completed.append(result)
        return completed

    async def run_pass(self) -> Dict[SourceId, SourceTotals]:
        """
        Ingest every artist once.

        Raises:
            ArtistListError: artists could not be listed; nothing was scraped.
        """
        terms = await self.store.list_search_terms()
        grouped = group_by_artist(terms)
        logger.info(f"list of current artists: {', '.join(term.term for term in terms)}")

        totals: Dict[SourceId, SourceTotals] = {source: SourceTotals() for source in self.adapters}
        for artist_id, search_terms in grouped.items():
            for stats in await self.ingest_artist(artist_id, search_terms):
                totals[stats.source].add(stats)
        return totals


async def run_ingestion_pass(
    *,
    sources: Optional[Sequence[str]] = None,
    page_size: Optional[int] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Dict[SourceId, SourceTotals]:
    """Run one pass with live HTTP clients. Safe to call repeatedly."""
    store = CorpusStore(session_factory)
    checkpoints = CheckpointStore(session_factory)

    async with httpx.AsyncClient(
        timeout=settings.http_timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    ) as client:
        adapters = build_adapters(client, sources or settings.enabled_sources, page_size)
        async with ImageDownloader() as downloader:
            pipeline = IngestionPipeline(store, checkpoints, adapters, downloader)
            return await pipeline.run_pass()


def log_run_summary(totals: Dict[SourceId, SourceTotals], elapsed: float) -> None:
    """Log a summary of an ingestion pass."""
    logger.info("=" * 60)
    logger.info("INGESTION PASS SUMMARY")
    logger.info("=" * 60)
    for source, source_totals in totals.items():
        logger.info(
            f"  {source.value:10} {source_totals.success_count:,} stored, "
            f"{source_totals.failure_count:,} failed, "
            f"{source_totals.skipped_count:,} already known"
        )
    logger.info("-" * 60)
    logger.info(f"Completed in {elapsed:.1f}s")
    logger.info("=" * 60)


async def _run(args: argparse.Namespace) -> None:
    from ..db import dispose_engine, get_engine
    from ..schema import create_schema

    try:
        if args.create_schema:
            await create_schema(get_engine())
        start_time = time.time()
        totals = await run_ingestion_pass(sources=args.sources, page_size=args.page_size)
        log_run_summary(totals, time.time() - start_time)
    finally:
        await dispose_engine()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    parser = argparse.ArgumentParser(description="Scrape known artists into the ARTMATCH corpus")
    parser.add_argument(
        "--sources",
        nargs="+",
        choices=[source.value for source in SourceId],
        default=None,
        help="Sources to scrape (default: settings.enabled_sources)",
    )
    parser.add_argument("--page-size", type=int, default=None, help="Posts requested per page")
    parser.add_argument("--create-schema", action="store_true", help="Create missing tables first")
    args = parser.parse_args()

    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
