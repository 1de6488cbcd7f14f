from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import settings
from ..errors import TransportError

logger = logging.getLogger(__name__)


class ImageDownloader:
    """
    Downloads original image files for fingerprinting.

    Usage:
        async with ImageDownloader() as downloader:
            data = await downloader.download(post.file_url)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self.timeout = timeout or settings.http_timeout
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ImageDownloader":
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": settings.download_user_agent},
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, *args) -> None:
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None

    async def download(self, url: str) -> bytes:
        """Fetch raw bytes; any network failure or non-2xx status is a TransportError."""
        if self.client is None:
            raise RuntimeError("ImageDownloader must be used as an async context manager")
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"download failed for {url}: {exc}") from exc
        return response.content
