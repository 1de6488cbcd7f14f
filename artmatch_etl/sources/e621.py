"""
e621 Data Source
================
Post listing from the e621 API.

Once a watermark exists, pages are requested with the "a<id>" cursor
(posts newer than id). A first scrape has no cursor yet and walks page
numbers sequentially.
https://e621.net/help/api
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from ..config import settings
from ..errors import DecodeError
from ..models import SourceId
from .base import (
    CursorToken,
    PageNumberToken,
    PageToken,
    PostPage,
    SourceAdapter,
    fetch_json,
    parse_post,
)

MAX_PAGE_SIZE = 320


class E621Adapter(SourceAdapter):
    source = SourceId.E621

    def first_token(self, watermark: int) -> PageToken:
        if watermark > 0:
            return CursorToken(after_id=watermark)
        return PageNumberToken(1)

    def next_token(self, token: PageToken, page: PostPage) -> PageToken:
        if isinstance(token, CursorToken):
            return CursorToken(after_id=max(token.after_id, page.highest_id))
        if isinstance(token, PageNumberToken):
            return PageNumberToken(token.page + 1)
        raise self._unsupported(token)

    async def list_posts(self, search_term: str, token: PageToken, page_size: int) -> PostPage:
        if isinstance(token, CursorToken):
            page_param = f"a{token.after_id}"
        elif isinstance(token, PageNumberToken):
            page_param = str(token.page)
        else:
            raise self._unsupported(token)

        params: Dict[str, Any] = {
            "tags": search_term,
            "page": page_param,
            "limit": min(page_size, MAX_PAGE_SIZE),
        }
        auth: Optional[Tuple[str, str]] = None
        if settings.e621_login and settings.e621_api_key:
            auth = (settings.e621_login, settings.e621_api_key)

        payload = await fetch_json(self.client, f"{settings.e621_base_url}/posts.json", params, auth=auth)
        try:
            records = payload["posts"]
            # file.url is null for posts hidden from anonymous users
            posts = [parse_post(record["id"], (record.get("file") or {}).get("url")) for record in records]
        except (KeyError, TypeError, AttributeError) as exc:
            raise DecodeError(f"unexpected e621 response: {exc}") from exc

        return PostPage(posts=posts, has_more=len(posts) >= min(page_size, MAX_PAGE_SIZE))
