from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .db import dispose_engine
from .routers import corpus_router, health_router, match_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    api_prefix = settings.api_prefix.rstrip("/")
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        docs_url=f"{api_prefix}/docs",
        openapi_url=f"{api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    if settings.api_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.api_cors_origins],
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
        )

    # Public API boundary: everything lives under /api/artmatch/...
    app.include_router(health_router, prefix=api_prefix)
    app.include_router(match_router, prefix=api_prefix)
    app.include_router(corpus_router, prefix=api_prefix)

    return app


app = create_app()


def run() -> None:
    """Entry point for python -m artmatch_api."""
    import uvicorn

    uvicorn.run(
        'artmatch_api.main:app',
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.api_log_level,
    )
