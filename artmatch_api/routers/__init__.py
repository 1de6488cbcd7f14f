from .corpus import router as corpus_router
from .health import router as health_router
from .match import router as match_router

__all__ = [
    "health_router",
    "match_router",
    "corpus_router",
]
