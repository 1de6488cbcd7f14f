"""
Source adapter contract.

Every image board is reduced to "list a page of posts for a tag". Each
board pages differently, so page tokens are a small tagged union and each
adapter only accepts the tokens it hands out:

- OffsetToken: skip N posts (Gelbooru)
- PageNumberToken: 1-based page index (Danbooru, e621 before a watermark exists)
- CursorToken: posts with id above after_id (e621 once a watermark exists)
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import settings
from ..errors import DecodeError, TransportError
from ..models import SourceId


@dataclass(frozen=True)
class OffsetToken:
    offset: int = 0


@dataclass(frozen=True)
class PageNumberToken:
    page: int = 1


@dataclass(frozen=True)
class CursorToken:
    after_id: int


PageToken = Union[OffsetToken, PageNumberToken, CursorToken]


@dataclass(frozen=True)
class Post:
    external_id: int
    file_url: Optional[str] = None


@dataclass
class PostPage:
    posts: List[Post] = field(default_factory=list)
    has_more: bool = False

    @property
    def highest_id(self) -> int:
        return max((post.external_id for post in self.posts), default=0)


@retry(
    stop=stop_after_attempt(settings.http_retries),
    wait=wait_exponential(multiplier=0.5, max=8),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _get(
    client: httpx.AsyncClient,
    url: str,
    params: Dict[str, Any],
    auth: Optional[Tuple[str, str]] = None,
) -> httpx.Response:
    response = await client.get(url, params=params, auth=auth)
    response.raise_for_status()
    return response


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: Dict[str, Any],
    auth: Optional[Tuple[str, str]] = None,
) -> Any:
    """GET a JSON document; network-level errors are retried, then reported as TransportError."""
    try:
        response = await _get(client, url, params, auth)
    except httpx.HTTPError as exc:
        raise TransportError(f"request to {url} failed: {exc}") from exc
    try:
        return response.json()
    except ValueError as exc:
        raise DecodeError(f"malformed JSON from {url}: {exc}") from exc


def parse_post(external_id: Any, file_url: Any) -> Post:
    try:
        post_id = int(external_id)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"post without a numeric id: {external_id!r}") from exc
    return Post(external_id=post_id, file_url=file_url or None)


class SourceAdapter(ABC):
    """Uniform paged listing for one image board."""

    source: SourceId

    def __init__(self, client: httpx.AsyncClient, page_size: Optional[int] = None):
        self.client = client
        self.page_size = page_size or settings.page_size

    @abstractmethod
    def first_token(self, watermark: int) -> PageToken:
        """Token for the first page of a scrape resuming from watermark."""

    @abstractmethod
    def next_token(self, token: PageToken, page: PostPage) -> PageToken:
        """Token for the page after `page`, fetched with `token`."""

    @abstractmethod
    async def list_posts(self, search_term: str, token: PageToken, page_size: int) -> PostPage:
        """Fetch one page of posts tagged with search_term."""

    def _unsupported(self, token: PageToken) -> TypeError:
        return TypeError(f"{self.source.value} does not accept {type(token).__name__}")
