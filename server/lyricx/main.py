import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lyricx.config import settings
from lyricx.api import lyrics, media
from lyricx.services.lyrics_repository import LyricsRepository
from lyricx.services.lyrics_service import LyricsService
from lyricx.services.media_observer import MediaStateObserver
from lyricx.services.now_playing import NowPlayingCoordinator
from lyricx.services.providers import build_providers, create_http_client
from lyricx.services.storage import lyrics_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    logging.getLogger("lyricx").setLevel(settings.log_level.upper())

    # One HTTP client shared by every provider for the app's lifetime
    http = create_http_client()
    service = LyricsService(
        client=http,
        providers=build_providers(http, settings.provider_priority_list),
    )
    repository = LyricsRepository(service, lyrics_cache)
    observer = MediaStateObserver()
    coordinator = NowPlayingCoordinator(repository, observer)

    app.state.service = service
    app.state.repository = repository
    app.state.observer = observer
    app.state.coordinator = coordinator

    coordinator.start()
    logger.info(
        "Providers: %s; cache at %s",
        ", ".join(p.name for p in service.providers), lyrics_cache.path,
    )
    try:
        yield
    finally:
        await coordinator.stop()
        await observer.aclose()
        await http.aclose()


app = FastAPI(
    title="LyricX API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(lyrics.router, prefix="/api/lyrics", tags=["lyrics"])
app.include_router(media.router, prefix="/api/media", tags=["media"])
app.include_router(media.ws_router, prefix="/ws", tags=["media"])


@app.get("/api/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
