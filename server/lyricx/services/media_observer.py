"""Now-playing state from the host's media-session bridge, as an event stream.

The bridge pushes ``MediaState`` snapshots with ``publish()``. Consumers
``subscribe()`` and iterate; closing the last subscription also stops the
position ticker that extrapolates playback position between snapshots.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from typing import Protocol

from lyricx.config import settings
from lyricx.models.media import MediaState, Song, TransportCommand
from lyricx.services.text import song_id as make_song_id

logger = logging.getLogger(__name__)


class TransportController(Protocol):
    async def send(self, command: TransportCommand, position_ms: int | None = None) -> bool:
        ...


class NullTransportController:
    """Used when no host bridge can take commands; every command is refused."""

    async def send(self, command: TransportCommand, position_ms: int | None = None) -> bool:
        logger.debug("No transport controller attached; ignoring '%s'", command)
        return False


def song_from_state(state: MediaState) -> Song | None:
    if not state.has_track:
        return None
    title = (state.title or "").strip()
    artist = (state.artist or "").strip()
    return Song(
        id=make_song_id(artist, title),
        title=title,
        artist=artist,
        album=state.album,
        artwork_url=state.artwork_url,
        duration_ms=state.duration_ms or None,
        source=state.source_app or None,
    )


class Subscription:
    """One consumer's view of the stream. Lossy: the oldest snapshot is
    dropped when the consumer falls behind."""

    def __init__(self, observer: "MediaStateObserver", maxsize: int = 64) -> None:
        self._observer = observer
        self._queue: asyncio.Queue[MediaState | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, state: MediaState | None) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(state)

    async def get(self) -> MediaState | None:
        """Next snapshot, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._observer._unsubscribe(self)
        self._push(None)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> MediaState:
        state = await self.get()
        if state is None:
            raise StopAsyncIteration
        return state

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class MediaStateObserver:
    """Owns the current media state; one instance per composition root."""

    def __init__(
        self,
        poll_interval: float | None = None,
        controller: TransportController | None = None,
    ) -> None:
        self._poll_interval = poll_interval or settings.media_poll_interval_seconds
        self._controller: TransportController = controller or NullTransportController()
        self._subscribers: list[Subscription] = []
        self._current: MediaState | None = None
        self._anchor = 0.0
        self._ticker: asyncio.Task[None] | None = None

    @property
    def current(self) -> MediaState | None:
        """Latest snapshot with the position extrapolated to now."""
        if self._current is None:
            return None
        return self._current.model_copy(update={"position_ms": self.position_ms()})

    @property
    def current_song(self) -> Song | None:
        return song_from_state(self._current) if self._current is not None else None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def attach_controller(self, controller: TransportController) -> None:
        self._controller = controller

    def position_ms(self, now: float | None = None) -> int:
        if self._current is None:
            return 0
        position = self._current.position_ms
        if self._current.is_playing:
            elapsed = (now if now is not None else time.monotonic()) - self._anchor
            position += int(max(elapsed, 0.0) * 1000)
        if self._current.duration_ms > 0:
            position = min(position, self._current.duration_ms)
        return position

    def publish(self, state: MediaState) -> None:
        """Accept a snapshot from the platform bridge and fan it out."""
        self._current = state
        self._anchor = time.monotonic()
        self._broadcast(state)
        self._sync_ticker()

    def _broadcast(self, state: MediaState) -> None:
        for subscription in list(self._subscribers):
            subscription._push(state)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        self._subscribers.append(subscription)
        if self._current is not None:
            subscription._push(self.current)
        self._sync_ticker()
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
        self._sync_ticker()

    async def songs(self) -> AsyncIterator[Song]:
        """Yield a ``Song`` each time the track identity changes.

        Snapshots without both title and artist are skipped.
        """
        last_id: str | None = None
        async with self.subscribe() as subscription:
            async for state in subscription:
                song = song_from_state(state)
                if song is None or song.id == last_id:
                    continue
                last_id = song.id
                yield song

    def _sync_ticker(self) -> None:
        wanted = bool(self._subscribers) and self._current is not None and self._current.is_playing
        if wanted and not self.ticking:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            self._ticker = loop.create_task(self._tick())
        elif not wanted and self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            current = self.current
            if current is None or not current.is_playing:
                return
            self._broadcast(current)

    async def send_command(self, command: TransportCommand, position_ms: int | None = None) -> bool:
        """Forward a transport command to the host; True if it was accepted."""
        try:
            accepted = await self._controller.send(command, position_ms)
        except Exception:
            logger.exception("Transport command '%s' failed", command)
            return False

        if accepted and self._current is not None:
            if command == "seek" and position_ms is not None:
                self.publish(self._current.model_copy(update={"position_ms": position_ms}))
            elif command in ("play", "pause"):
                self.publish(self._current.model_copy(update={
                    "position_ms": self.position_ms(),
                    "is_playing": command == "play",
                }))
        return accepted

    async def aclose(self) -> None:
        for subscription in list(self._subscribers):
            subscription.close()
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
