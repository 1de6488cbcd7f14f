from typing import List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    artmatch_db_host: str = "localhost"
    artmatch_db_port: int = 5432
    artmatch_db_user: str = "artmatch"
    artmatch_db_password: str = "artmatch"
    artmatch_db_name: str = "artmatch"

    # API
    api_title: str = "ARTMATCH API"
    api_version: str = "0.1.0"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_log_level: str = "info"
    api_prefix: str = "/api/artmatch"

    api_cors_origins: List[AnyHttpUrl] = Field(default_factory=list)
    api_keys: List[str] = Field(
        default_factory=list,
        description="Allowed API keys for protected endpoints.",
    )

    # Uploads
    max_upload_bytes: int = Field(
        20 * 1024 * 1024,
        description="Largest image accepted by the match endpoint.",
    )
    max_files_per_request: int = Field(
        10,
        description="Most images accepted in one match request.",
    )
    default_page_size: int = 25
    max_page_size: int = 100

    @property
    def artmatch_db_dsn(self) -> str:
        return (
            f"postgresql+asyncpg://{self.artmatch_db_user}:"
            f"{self.artmatch_db_password}@{self.artmatch_db_host}:"
            f"{self.artmatch_db_port}/{self.artmatch_db_name}"
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = Settings()
