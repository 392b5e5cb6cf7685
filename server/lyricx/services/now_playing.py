"""Keeps lyrics in step with whatever the media observer reports as playing."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, ConfigDict

from lyricx.exceptions import InvalidQuery, LyricsNotFound, LyricsTimeout
from lyricx.models.lrc import ParsedLrc
from lyricx.models.lyrics import LyricsResult, _to_camel
from lyricx.models.media import Song
from lyricx.services.lrc_parser import parse, parse_async
from lyricx.services.lyrics_repository import LyricsRepository
from lyricx.services.media_observer import MediaStateObserver
from lyricx.services.text import song_id as make_song_id

logger = logging.getLogger(__name__)

LyricsStatus = Literal["idle", "loading", "found", "not_found", "timeout", "error"]

NOT_FOUND_MESSAGE = "No lyrics found for this song"
TIMEOUT_MESSAGE = "Took too long to fetch lyrics. Try searching manually."


class LyricsState(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    song: Song | None = None
    lyrics: LyricsResult | None = None
    status: LyricsStatus = "idle"
    error: str | None = None
    request_id: int = 0
    parsed: ParsedLrc | None = None


class NowPlayingCoordinator:
    """Fetches lyrics on every song change and publishes ``LyricsState``.

    Each lookup is tagged with a request id; a result that arrives after a
    newer lookup started is dropped instead of overwriting the newer state.
    """

    def __init__(self, repository: LyricsRepository, observer: MediaStateObserver) -> None:
        self._repository = repository
        self._observer = observer
        self._state = LyricsState()
        self._latest_request = 0
        self._listeners: list[asyncio.Queue[LyricsState]] = []
        self._runner: asyncio.Task[None] | None = None
        self._lookups: set[asyncio.Task[LyricsState]] = set()

    @property
    def state(self) -> LyricsState:
        return self._state

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def _next_request(self) -> int:
        self._latest_request += 1
        return self._latest_request

    def _set_state(self, state: LyricsState) -> None:
        self._state = state
        for queue in list(self._listeners):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(state)

    async def updates(self) -> AsyncIterator[LyricsState]:
        """Yield the current state, then every later change."""
        queue: asyncio.Queue[LyricsState] = asyncio.Queue(maxsize=16)
        queue.put_nowait(self._state)
        self._listeners.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._listeners.remove(queue)

    async def _lookup(
        self,
        song: Song,
        request_id: int,
        fetch: Callable[[], Awaitable[LyricsResult]],
    ) -> LyricsState:
        try:
            lyrics = await fetch()
            parsed = await parse_async(lyrics.synced_lyrics) if lyrics.is_synced else None
            new_state = LyricsState(
                song=song, lyrics=lyrics, status="found", parsed=parsed, request_id=request_id,
            )
        except LyricsNotFound:
            new_state = LyricsState(
                song=song, status="not_found", error=NOT_FOUND_MESSAGE, request_id=request_id,
            )
        except LyricsTimeout:
            new_state = LyricsState(
                song=song, status="timeout", error=TIMEOUT_MESSAGE, request_id=request_id,
            )
        except InvalidQuery as e:
            new_state = LyricsState(song=song, status="error", error=str(e), request_id=request_id)
        except Exception as e:
            logger.exception("Lyrics lookup for %s failed", song.id)
            new_state = LyricsState(song=song, status="error", error=str(e), request_id=request_id)

        if request_id != self._latest_request:
            logger.debug("Discarding stale lyrics result for %s (request %d)", song.id, request_id)
            return new_state
        self._set_state(new_state)
        return new_state

    async def load_song(self, song: Song, force_refresh: bool = False) -> LyricsState:
        """Look up lyrics for ``song``; returns the state this lookup produced."""
        request_id = self._next_request()
        self._set_state(LyricsState(song=song, status="loading", request_id=request_id))
        return await self._lookup(
            song, request_id, lambda: self._repository.get_lyrics(song, force_refresh),
        )

    async def search_lyrics(self, artist: str, title: str) -> LyricsState:
        """Manual search that replaces whatever is currently shown."""
        song = Song(id=make_song_id(artist, title), title=title, artist=artist)
        request_id = self._next_request()
        self._set_state(LyricsState(song=song, status="loading", request_id=request_id))
        return await self._lookup(
            song, request_id, lambda: self._repository.search_lyrics(artist, title),
        )

    def set_lyrics(self, lyrics: LyricsResult) -> LyricsState:
        """Show a result the user picked from search candidates."""
        parsed = parse(lyrics.synced_lyrics) if lyrics.is_synced else None
        song = self._state.song or Song(
            id=lyrics.song_id,
            title=lyrics.track_name or "",
            artist=lyrics.artist_name or "",
        )
        state = LyricsState(
            song=song,
            lyrics=lyrics,
            status="found",
            parsed=parsed,
            request_id=self._next_request(),
        )
        self._set_state(state)
        return state

    def clear(self) -> None:
        self._set_state(LyricsState(request_id=self._next_request()))

    def current_line_index(self, position_ms: int) -> int:
        """Index of the synced line at ``position_ms``; -1 without synced lyrics."""
        if self._state.parsed is None:
            return -1
        return self._state.parsed.line_index_at_time(timedelta(milliseconds=position_ms))

    async def _run(self) -> None:
        async for song in self._observer.songs():
            logger.info("Now playing: '%s' by '%s'", song.title, song.artist)
            task = asyncio.create_task(self.load_song(song))
            self._lookups.add(task)
            task.add_done_callback(self._lookups.discard)

    def start(self) -> None:
        if not self.running:
            self._runner = asyncio.create_task(self._run())

    async def stop(self) -> None:
        tasks = [t for t in (self._runner, *self._lookups) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._runner = None
        self._lookups.clear()
