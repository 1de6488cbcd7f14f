"""
Gelbooru Data Source
====================
Offset-paged post listing from the Gelbooru DAPI.
https://gelbooru.com/index.php?page=wiki&s=view&id=18780
"""
from __future__ import annotations

from typing import Any, Dict

from ..config import settings
from ..errors import DecodeError
from ..models import SourceId
from .base import OffsetToken, PageToken, PostPage, SourceAdapter, fetch_json, parse_post


class GelbooruAdapter(SourceAdapter):
    source = SourceId.GELBOORU

    def first_token(self, watermark: int) -> PageToken:
        return OffsetToken(0)

    def next_token(self, token: PageToken, page: PostPage) -> PageToken:
        if not isinstance(token, OffsetToken):
            raise self._unsupported(token)
        return OffsetToken(token.offset + self.page_size)

    async def list_posts(self, search_term: str, token: PageToken, page_size: int) -> PostPage:
        if not isinstance(token, OffsetToken):
            raise self._unsupported(token)

        params: Dict[str, Any] = {
            "page": "dapi",
            "s": "post",
            "q": "index",
            "json": 1,
            "tags": search_term,
            "limit": page_size,
            "offset": token.offset,
        }
        if settings.gelbooru_api_key and settings.gelbooru_user_id:
            params["api_key"] = settings.gelbooru_api_key
            params["user_id"] = settings.gelbooru_user_id

        payload = await fetch_json(self.client, f"{settings.gelbooru_base_url}/index.php", params)
        try:
            total = int(payload["@attributes"]["count"])
            records = payload.get("post") or []
            posts = [parse_post(record["id"], record.get("file_url")) for record in records]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DecodeError(f"unexpected gelbooru response: {exc}") from exc

        return PostPage(posts=posts, has_more=bool(posts) and token.offset + page_size < total)
