from __future__ import annotations

import asyncio
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

import httpx
import numpy as np
import pytest
import respx
from PIL import Image

from artmatch_etl.checkpoint import CheckpointStore
from artmatch_etl.config import settings
from artmatch_etl.corpus import CorpusStore
from artmatch_etl.errors import ArtistListError, TransportError
from artmatch_etl.jobs.ingest_artworks import (
    IngestionPipeline,
    ItemOutcome,
    group_by_artist,
    run_ingestion_pass,
)
from artmatch_etl.models import SearchTerm, SourceId
from artmatch_etl.sources import PageNumberToken, Post, PostPage, SourceAdapter

PageOrError = Union[PostPage, Exception]


def make_png(seed: int) -> bytes:
    pixels = np.random.default_rng(seed).integers(0, 256, size=(32, 32), dtype=np.uint8)
    buffer = BytesIO()
    Image.fromarray(pixels).save(buffer, format="PNG")
    return buffer.getvalue()


def _url(external_id: int) -> str:
    return f"https://img.example/{external_id}.png"


def _page(ids: Sequence[int], has_more: bool = False) -> PostPage:
    return PostPage(posts=[Post(i, _url(i)) for i in ids], has_more=has_more)


class FakeAdapter(SourceAdapter):
    def __init__(
        self,
        source: SourceId,
        pages: List[PageOrError],
        log: Optional[List[Tuple[SourceId, str, int]]] = None,
    ):
        super().__init__(client=None, page_size=5)
        self.source = source
        self.pages = pages
        self.requests: List[Tuple[str, int]] = []
        self.log = log if log is not None else []

    def first_token(self, watermark):
        return PageNumberToken(1)

    def next_token(self, token, page):
        return PageNumberToken(token.page + 1)

    async def list_posts(self, search_term, token, page_size):
        self.requests.append((search_term, token.page))
        self.log.append((self.source, search_term, token.page))
        item = self.pages[token.page - 1]
        if isinstance(item, Exception):
            raise item
        return item


class FakeDownloader:
    def __init__(
        self,
        failing: Sequence[str] = (),
        bodies: Optional[Dict[str, bytes]] = None,
        crashing: Sequence[str] = (),
    ):
        self.failing = set(failing)
        self.bodies = bodies or {}
        self.crashing = set(crashing)
        self.requested: List[str] = []

    async def download(self, url: str) -> bytes:
        self.requested.append(url)
        if url in self.failing:
            raise TransportError(f"{url} timed out")
        if url in self.crashing:
            raise RuntimeError(f"unexpected failure fetching {url}")
        if url in self.bodies:
            return self.bodies[url]
        return make_png(int(url.rsplit("/", 1)[1].split(".")[0]))


class TrackingPipeline(IngestionPipeline):
    """Records how many posts are in flight and what had finished when each one started."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0
        self.finished: Set[int] = set()
        self.finished_at_start: Dict[int, Set[int]] = {}

    async def process_post(self, source, artist_id, post):
        self.finished_at_start[post.external_id] = set(self.finished)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0)
            return await super().process_post(source, artist_id, post)
        finally:
            self.in_flight -= 1
            self.finished.add(post.external_id)


class BrokenArtistStore:
    async def list_search_terms(self):
        raise ArtistListError("database unavailable")


def _pipeline(session_factory, adapters, downloader=None) -> IngestionPipeline:
    return IngestionPipeline(
        CorpusStore(session_factory),
        CheckpointStore(session_factory),
        {adapter.source: adapter for adapter in adapters},
        downloader or FakeDownloader(),
    )


async def test_three_new_posts_then_nothing_on_next_pass(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")

    first = FakeAdapter(SourceId.GELBOORU, [_page([10, 11, 12])])
    totals = await _pipeline(session_factory, [first]).run_pass()

    assert totals[SourceId.GELBOORU].success_count == 3
    assert totals[SourceId.GELBOORU].failure_count == 0
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 12
    assert await store.count_by_source() == {"gelbooru": 3}

    second = FakeAdapter(SourceId.GELBOORU, [_page([10, 11, 12])])
    downloader = FakeDownloader()
    totals = await _pipeline(session_factory, [second], downloader).run_pass()

    assert second.requests == [("A", 1)]
    assert downloader.requested == []
    assert totals[SourceId.GELBOORU].success_count == 0
    assert await store.count_by_source() == {"gelbooru": 3}


async def test_failed_downloads_are_counted_and_still_advance_watermark(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    adapter = FakeAdapter(SourceId.DANBOORU, [_page([1, 2, 3, 4, 5])])
    downloader = FakeDownloader(failing=[_url(2), _url(4)])

    totals = await _pipeline(session_factory, [adapter], downloader).run_pass()

    assert totals[SourceId.DANBOORU].failure_count == 2
    assert totals[SourceId.DANBOORU].success_count == 3
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.DANBOORU) == 5
    assert not await store.artwork_exists(SourceId.DANBOORU, 2)
    assert await store.artwork_exists(SourceId.DANBOORU, 3)


async def test_oversized_download_is_one_failure_and_scrape_continues(session_factory, oversized_png):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    adapter = FakeAdapter(SourceId.GELBOORU, [_page([1, 2, 3, 4, 5, 6, 7])])
    downloader = FakeDownloader(bodies={_url(3): oversized_png})

    totals = await _pipeline(session_factory, [adapter], downloader).run_pass()

    assert totals[SourceId.GELBOORU].failure_count == 1
    assert totals[SourceId.GELBOORU].success_count == 6
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 7
    assert not await store.artwork_exists(SourceId.GELBOORU, 3)


async def test_corrupt_download_is_one_failure(session_factory):
    pipeline = _pipeline(
        session_factory, [], FakeDownloader(bodies={_url(2): b"\x89PNG\r\n\x1a\n garbage"})
    )
    posts = [Post(1, _url(1)), Post(2, _url(2)), Post(3, _url(3))]

    outcomes = await pipeline.process_batch(SourceId.DANBOORU, None, posts)

    assert outcomes == [ItemOutcome.STORED, ItemOutcome.FAILED, ItemOutcome.STORED]


async def test_unexpected_item_error_does_not_abort_the_batch(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    adapter = FakeAdapter(SourceId.DANBOORU, [_page([1, 2, 3, 4, 5, 6])])
    downloader = FakeDownloader(crashing=[_url(2)])

    totals = await _pipeline(session_factory, [adapter], downloader).run_pass()

    assert totals[SourceId.DANBOORU].failure_count == 1
    assert totals[SourceId.DANBOORU].success_count == 5
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.DANBOORU) == 6


async def test_posts_are_processed_in_batches_of_five(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    checkpoints = CheckpointStore(session_factory)
    adapter = FakeAdapter(SourceId.GELBOORU, [_page(list(range(1, 13)))])
    pipeline = TrackingPipeline(
        store, checkpoints, {SourceId.GELBOORU: adapter}, FakeDownloader(), batch_size=5
    )

    totals = await pipeline.run_pass()

    assert pipeline.peak == 5
    assert totals[SourceId.GELBOORU].success_count == 12
    for external_id in range(1, 6):
        assert pipeline.finished_at_start[external_id] == set()
    for external_id in range(6, 11):
        assert pipeline.finished_at_start[external_id] == set(range(1, 6))
    for external_id in (11, 12):
        assert pipeline.finished_at_start[external_id] == set(range(1, 11))
    assert await checkpoints.get(artist_id, SourceId.GELBOORU) == 12


async def test_replaying_a_page_stores_each_post_once(session_factory):
    pipeline = _pipeline(session_factory, [])
    posts = [Post(1, _url(1)), Post(2, _url(2))]

    assert await pipeline.process_batch(SourceId.E621, None, posts) == [ItemOutcome.STORED] * 2
    assert await pipeline.process_batch(SourceId.E621, None, posts) == [ItemOutcome.DUPLICATE] * 2
    assert await CorpusStore(session_factory).count_by_source() == {"e621": 2}


async def test_duplicate_post_within_one_batch_is_stored_once(session_factory):
    pipeline = _pipeline(session_factory, [])
    outcomes = await pipeline.process_batch(SourceId.E621, None, [Post(9, _url(9)), Post(9, _url(9))])
    assert ItemOutcome.STORED in outcomes
    assert ItemOutcome.FAILED not in outcomes
    assert await CorpusStore(session_factory).count_by_source() == {"e621": 1}


async def test_first_page_failure_leaves_checkpoint_untouched(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    checkpoints = CheckpointStore(session_factory)
    await checkpoints.advance(artist_id, SourceId.E621, 50)
    adapter = FakeAdapter(SourceId.E621, [TransportError("503 from e621")])

    totals = await _pipeline(session_factory, [adapter]).run_pass()

    assert totals[SourceId.E621].success_count == 0
    assert await checkpoints.get(artist_id, SourceId.E621) == 50


async def test_later_page_failure_keeps_what_was_seen(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    adapter = FakeAdapter(SourceId.GELBOORU, [_page([20, 19], has_more=True), TransportError("reset")])

    totals = await _pipeline(session_factory, [adapter]).run_pass()

    assert totals[SourceId.GELBOORU].success_count == 2
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 20


async def test_paging_stops_at_the_watermark(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    checkpoints = CheckpointStore(session_factory)
    await checkpoints.advance(artist_id, SourceId.GELBOORU, 10)
    adapter = FakeAdapter(
        SourceId.GELBOORU,
        [
            _page([15, 14, 13], has_more=True),
            _page([12, 11, 10], has_more=True),
            _page([9, 8], has_more=False),
        ],
    )
    downloader = FakeDownloader()

    totals = await _pipeline(session_factory, [adapter], downloader).run_pass()

    assert adapter.requests == [("A", 1), ("A", 2)]
    assert totals[SourceId.GELBOORU].success_count == 5
    assert _url(10) not in downloader.requested
    assert await checkpoints.get(artist_id, SourceId.GELBOORU) == 15


async def test_paging_stops_when_source_has_no_more(session_factory):
    await CorpusStore(session_factory).add_artist("A")
    adapter = FakeAdapter(SourceId.DANBOORU, [_page([3, 2, 1], has_more=False), _page([0])])

    await _pipeline(session_factory, [adapter]).run_pass()

    assert adapter.requests == [("A", 1)]


async def test_post_without_file_url_is_a_failure(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    adapter = FakeAdapter(SourceId.E621, [PostPage(posts=[Post(7, None), Post(6, _url(6))])])

    totals = await _pipeline(session_factory, [adapter]).run_pass()

    assert totals[SourceId.E621].failure_count == 1
    assert totals[SourceId.E621].success_count == 1
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.E621) == 7


async def test_crashing_source_does_not_stop_its_siblings(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    broken = FakeAdapter(SourceId.GELBOORU, [RuntimeError("adapter bug")])
    healthy = FakeAdapter(SourceId.DANBOORU, [_page([4, 5])])

    totals = await _pipeline(session_factory, [broken, healthy]).run_pass()

    assert totals[SourceId.GELBOORU].success_count == 0
    assert totals[SourceId.DANBOORU].success_count == 2
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.DANBOORU) == 5
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 0


async def test_aliases_share_one_checkpoint(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    await store.add_alias("A", "A_alt")
    adapter = FakeAdapter(SourceId.GELBOORU, [_page([30, 31])])

    await _pipeline(session_factory, [adapter]).run_pass()

    assert adapter.requests == [("A", 1), ("A_alt", 1)]
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 31
    assert await store.count_by_source() == {"gelbooru": 2}


async def test_artists_are_processed_one_after_another(session_factory):
    store = CorpusStore(session_factory)
    await store.add_artist("A")
    await store.add_artist("B")
    log: List[Tuple[SourceId, str, int]] = []
    adapters = [
        FakeAdapter(SourceId.GELBOORU, [_page([1])], log),
        FakeAdapter(SourceId.DANBOORU, [_page([2])], log),
        FakeAdapter(SourceId.E621, [_page([3])], log),
    ]

    await _pipeline(session_factory, adapters).run_pass()

    terms = [term for _, term, _ in log]
    assert terms == ["A", "A", "A", "B", "B", "B"]


async def test_artist_list_failure_aborts_the_pass(session_factory):
    adapter = FakeAdapter(SourceId.GELBOORU, [_page([1])])
    pipeline = IngestionPipeline(
        BrokenArtistStore(),
        CheckpointStore(session_factory),
        {adapter.source: adapter},
        FakeDownloader(),
    )

    with pytest.raises(ArtistListError):
        await pipeline.run_pass()
    assert adapter.requests == []


def test_group_by_artist_keeps_term_order():
    terms = [SearchTerm(1, "a"), SearchTerm(1, "a2"), SearchTerm(2, "b")]
    assert group_by_artist(terms) == {1: ["a", "a2"], 2: ["b"]}


async def test_run_ingestion_pass_against_mocked_gelbooru(session_factory):
    store = CorpusStore(session_factory)
    artist_id = await store.add_artist("A")
    listing = {
        "@attributes": {"limit": 100, "offset": 0, "count": 2},
        "post": [
            {"id": 101, "file_url": "https://img.example/101.png"},
            {"id": 100, "file_url": "https://img.example/100.png"},
        ],
    }
    with respx.mock as mock:
        mock.get(f"{settings.gelbooru_base_url}/index.php").mock(
            return_value=httpx.Response(200, json=listing)
        )
        mock.get("https://img.example/101.png").mock(
            return_value=httpx.Response(200, content=make_png(101))
        )
        mock.get("https://img.example/100.png").mock(return_value=httpx.Response(404))

        totals = await run_ingestion_pass(sources=["gelbooru"], session_factory=session_factory)

    assert list(totals) == [SourceId.GELBOORU]
    assert totals[SourceId.GELBOORU].success_count == 1
    assert totals[SourceId.GELBOORU].failure_count == 1
    assert await CheckpointStore(session_factory).get(artist_id, SourceId.GELBOORU) == 101
