"""Request-scoped access to the objects the lifespan hook builds on ``app.state``."""

from fastapi import Request

from lyricx.services.lyrics_repository import LyricsRepository
from lyricx.services.media_observer import MediaStateObserver
from lyricx.services.now_playing import NowPlayingCoordinator


def get_repository(request: Request) -> LyricsRepository:
    return request.app.state.repository


def get_observer(request: Request) -> MediaStateObserver:
    return request.app.state.observer


def get_coordinator(request: Request) -> NowPlayingCoordinator:
    return request.app.state.coordinator