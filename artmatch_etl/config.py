from __future__ import annotations

import os
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


def _get_default_db_url() -> str:
    """Build database URL from environment or use defaults."""
    host = os.getenv("ARTMATCH_DB_HOST", "localhost")
    port = os.getenv("ARTMATCH_DB_PORT", "5432")
    user = os.getenv("ARTMATCH_DB_USER", "artmatch")
    password = os.getenv("ARTMATCH_DB_PASSWORD", "artmatch")
    name = os.getenv("ARTMATCH_DB_NAME", "artmatch")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


class ETLSettings(BaseSettings):
    # Database - async SQLAlchemy URL shared by the pipeline and the matcher
    database_url: str = Field(
        default_factory=_get_default_db_url,
        description="SQLAlchemy asyncio connection string.",
    )

    # HTTP settings
    http_timeout: float = 30.0
    http_retries: int = 3
    user_agent: str = "artmatch-etl/0.1 (AI art repost detector)"
    download_user_agent: str = "curl/8.15.0"

    # Gelbooru
    gelbooru_base_url: str = "https://gelbooru.com"
    gelbooru_api_key: Optional[str] = None
    gelbooru_user_id: Optional[str] = None

    # Danbooru
    danbooru_base_url: str = "https://danbooru.donmai.us"
    danbooru_api_key: Optional[str] = None
    danbooru_login: Optional[str] = None

    # e621
    e621_base_url: str = "https://e621.net"
    e621_api_key: Optional[str] = None
    e621_login: Optional[str] = None

    # Ingestion
    page_size: int = 100
    batch_size: int = 5  # Concurrent downloads per source
    enabled_sources: List[str] = Field(
        default_factory=lambda: ["gelbooru", "danbooru", "e621"],
        description="Sources scraped by each ingestion pass.",
    )

    # Matching
    match_distance_threshold: int = 15  # Exclusive upper bound, in bits
    scan_chunk_size: int = 4096
    scan_workers: Optional[int] = None  # Defaults to the CPU count

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = ETLSettings()
