"""
Danbooru Data Source
====================
Page-number listing from the Danbooru posts API.
https://danbooru.donmai.us/wiki_pages/help:api
"""
from __future__ import annotations

from typing import Any, Dict

from ..config import settings
from ..errors import DecodeError
from ..models import SourceId
from .base import PageNumberToken, PageToken, PostPage, SourceAdapter, fetch_json, parse_post


class DanbooruAdapter(SourceAdapter):
    source = SourceId.DANBOORU

    def first_token(self, watermark: int) -> PageToken:
        return PageNumberToken(1)

    def next_token(self, token: PageToken, page: PostPage) -> PageToken:
        if not isinstance(token, PageNumberToken):
            raise self._unsupported(token)
        return PageNumberToken(token.page + 1)

    async def list_posts(self, search_term: str, token: PageToken, page_size: int) -> PostPage:
        if not isinstance(token, PageNumberToken):
            raise self._unsupported(token)

        params: Dict[str, Any] = {
            "tags": search_term,
            "page": token.page,
            "limit": page_size,
        }
        if settings.danbooru_login and settings.danbooru_api_key:
            params["login"] = settings.danbooru_login
            params["api_key"] = settings.danbooru_api_key

        payload = await fetch_json(self.client, f"{settings.danbooru_base_url}/posts.json", params)
        if not isinstance(payload, list):
            raise DecodeError(f"unexpected danbooru response: {type(payload).__name__}")
        try:
            # Restricted posts come back without file_url
            posts = [parse_post(record["id"], record.get("file_url")) for record in payload]
        except (KeyError, TypeError, AttributeError) as exc:
            raise DecodeError(f"unexpected danbooru post: {exc}") from exc

        return PostPage(posts=posts, has_more=len(posts) >= page_size)
