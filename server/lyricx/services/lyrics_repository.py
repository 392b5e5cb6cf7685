"""Cache-aware lyrics lookups on top of the fan-out service."""

import asyncio
import logging

from lyricx.config import settings
from lyricx.exceptions import LyricsNotFound, LyricsTimeout
from lyricx.models.lyrics import LyricsResult
from lyricx.models.media import Song
from lyricx.services.lyrics_service import LyricsService
from lyricx.services.storage import LyricsCache
from lyricx.services.text import song_id as make_song_id

logger = logging.getLogger(__name__)


class LyricsRepository:
    """Reads the cache before fetching and writes it after a successful fetch."""

    def __init__(
        self,
        service: LyricsService,
        cache: LyricsCache,
        resolve_timeout: float | None = None,
        manual_search_timeout: float | None = None,
    ) -> None:
        self._service = service
        self._cache = cache
        self._resolve_timeout = resolve_timeout or settings.resolve_timeout_seconds
        self._manual_timeout = manual_search_timeout or settings.manual_search_timeout_seconds

    @property
    def service(self) -> LyricsService:
        return self._service

    @property
    def cache(self) -> LyricsCache:
        return self._cache

    async def _resolve_bounded(self, artist: str, title: str, timeout: float) -> LyricsResult | None:
        try:
            return await asyncio.wait_for(self._service.resolve(artist, title), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Lookup for '%s' by '%s' exceeded %gs", title, artist, timeout)
            raise LyricsTimeout(artist, title, timeout) from None

    async def get_lyrics(self, song: Song, force_refresh: bool = False) -> LyricsResult:
        """Lyrics for a now-playing song.

        A cached plain-only entry gets one attempt at a synced upgrade before
        it is returned. Raises ``LyricsNotFound`` or ``LyricsTimeout``.
        """
        song_id = make_song_id(song.artist, song.title)

        if not force_refresh:
            cached = await self._cache.get(song_id)
            if cached is not None:
                if cached.is_synced:
                    return cached
                try:
                    upgraded = await self._resolve_bounded(
                        song.artist, song.title, self._resolve_timeout,
                    )
                except LyricsTimeout:
                    upgraded = None
                if upgraded is not None and upgraded.is_synced:
                    logger.info("Replacing cached plain lyrics for %s with synced", song_id)
                    await self._cache.put(upgraded)
                    return upgraded
                return cached

        result = await self._resolve_bounded(song.artist, song.title, self._resolve_timeout)
        if result is None:
            raise LyricsNotFound(song.artist, song.title)

        await self._cache.put(result)
        return result

    async def search_lyrics(self, artist: str, title: str) -> LyricsResult:
        """Manual search by artist and title; cached like automatic lookups."""
        song_id = make_song_id(artist, title)
        cached = await self._cache.get(song_id)
        if cached is not None:
            return cached

        result = await self._resolve_bounded(artist, title, self._manual_timeout)
        if result is None:
            raise LyricsNotFound(artist, title)

        await self._cache.put(result)
        return result

    async def search_online(self, query: str) -> list[LyricsResult]:
        return await self._service.search_by_query(query)

    async def search_all_providers(self, artist: str, title: str) -> dict[str, LyricsResult | None]:
        return await self._service.search_all_providers(artist, title)

    async def get_cached_lyrics(self, song_id: str) -> LyricsResult | None:
        return await self._cache.get(song_id)

    async def cache_lyrics(self, result: LyricsResult) -> None:
        await self._cache.put(result)

    async def get_all_cached_lyrics(self) -> list[LyricsResult]:
        return await self._cache.all()

    async def delete_cached_lyrics(self, song_id: str) -> bool:
        return await self._cache.delete(song_id)

    async def search_cached_lyrics(self, query: str) -> list[LyricsResult]:
        return await self._cache.search(query)
