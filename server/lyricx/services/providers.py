"""Lyrics provider adapters.

One adapter per public lyrics API. Each maps a lookup into a common
``LyricsResult`` and reports what happened as a ``ProviderOutcome``; no
adapter lets an exception escape ``fetch()``. A 404 is the ordinary
"not found" answer, not an error.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, ClassVar
from urllib.parse import quote

import httpx

from lyricx.config import settings
from lyricx.models.lyrics import LyricsResult, OutcomeStatus, ProviderOutcome, SearchOutcome
from lyricx.services.lrc_parser import extract_plain_from_lrc, format_lrc_timestamp
from lyricx.services.text import song_id as make_song_id

logger = logging.getLogger(__name__)


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        settings.receive_timeout_seconds,
        connect=settings.connect_timeout_seconds,
    )


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=default_timeout(),
        headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
        follow_redirects=True,
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _build_result(
    song_id: str,
    source: str,
    plain: str,
    synced: str | None = None,
    *,
    result_id: str | None = None,
    artist: str | None = None,
    title: str | None = None,
    album: str | None = None,
) -> LyricsResult:
    fetched_at = _now()
    return LyricsResult(
        id=result_id or f"{song_id}_{int(fetched_at.timestamp() * 1000)}",
        song_id=song_id,
        plain_lyrics=plain,
        synced_lyrics=synced or None,
        source=source,
        fetched_at=fetched_at,
        artist_name=artist or None,
        track_name=title or None,
        album_name=album or None,
    )


def classify_failure(exc: Exception) -> tuple[OutcomeStatus, str | None]:
    """Map an exception raised by a provider call to an outcome status."""
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 404:
            return "not_found", None
        return "error", f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return "timeout", "request timed out"
    # Transport failures and malformed payloads (bad JSON, unexpected shapes)
    return "error", f"{type(exc).__name__}: {exc}"


class LyricsProvider(ABC):
    """Base class for a single lyrics API integration."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    # Slower or less reliable for Latin-script content
    slow: ClassVar[bool] = False

    def __init__(self, client: httpx.AsyncClient, timeout: httpx.Timeout | None = None) -> None:
        self._client = client
        self._timeout = timeout or default_timeout()

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._client.get(url, params=params, timeout=self._timeout)
        response.raise_for_status()
        return response.json()

    async def fetch(self, artist: str, title: str, song_id: str) -> ProviderOutcome:
        """Look up lyrics; every failure is absorbed into the outcome."""
        started = time.monotonic()
        result: LyricsResult | None = None
        error: str | None = None

        try:
            result = await self._fetch(artist, title, song_id)
            status: OutcomeStatus = "found" if result is not None else "not_found"
        except Exception as e:
            status, error = classify_failure(e)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if error:
            logger.warning(
                "%s failed for '%s' by '%s': %s", self.display_name, title, artist, error,
            )
        else:
            logger.debug(
                "%s -> %s for '%s' by '%s' (%d ms)",
                self.display_name, status, title, artist, elapsed_ms,
            )

        return ProviderOutcome(
            provider=self.name,
            status=status,
            artist=artist,
            title=title,
            result=result,
            error=error,
            elapsed_ms=elapsed_ms,
        )

    @abstractmethod
    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        """Perform the HTTP call(s). May raise; ``fetch`` absorbs."""
        ...


class LrclibProvider(LyricsProvider):
    """LRCLIB exact lookup; the best source of synced lyrics."""

    name = "lrclib"
    display_name = "LRCLIB"

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        data = await self._get_json(
            settings.lrclib_api_url,
            params={"track_name": title, "artist_name": artist},
        )
        if not isinstance(data, dict):
            return None
        return _from_lrclib_record(data, song_id, artist=artist, title=title)


def _from_lrclib_record(
    data: dict[str, Any],
    song_id: str,
    *,
    artist: str = "",
    title: str = "",
    result_id: str | None = None,
) -> LyricsResult | None:
    plain = (data.get("plainLyrics") or "").strip()
    synced = (data.get("syncedLyrics") or "").strip()
    if not plain and not synced:
        return None
    if not plain:
        plain = extract_plain_from_lrc(synced)
    return _build_result(
        song_id,
        LrclibProvider.display_name,
        plain,
        synced,
        result_id=result_id,
        artist=data.get("artistName") or artist,
        title=data.get("trackName") or title,
        album=data.get("albumName"),
    )


class LrclibSearchProvider(LyricsProvider):
    """LRCLIB fuzzy full-text search; tolerates metadata drift."""

    name = "lrclib-search"
    display_name = "LRCLIB"

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        candidates = await self._search(f"{artist} {title}".strip(), song_id)
        return candidates[0] if candidates else None

    async def _search(self, query: str, song_id: str | None) -> list[LyricsResult]:
        data = await self._get_json(settings.lrclib_search_api_url, params={"q": query})
        if not isinstance(data, list):
            return []

        results: list[LyricsResult] = []
        for record in data:
            if not isinstance(record, dict):
                continue
            artist = record.get("artistName") or ""
            title = record.get("trackName") or ""
            record_song_id = song_id or make_song_id(artist, title)
            result = _from_lrclib_record(
                record,
                record_song_id,
                result_id=f"{record_song_id}_{record.get('id')}",
            )
            if result is not None:
                results.append(result)
        return results

    async def search(self, query: str, song_id: str | None = None) -> list[LyricsResult]:
        """Return all candidates for ``query``; errors yield an empty list.

        When ``song_id`` is given every candidate is keyed to it, so the
        result can be cached under the identity of the original request.
        """
        outcome = await self.search_outcome(query, song_id)
        return outcome.candidates

    async def search_outcome(self, query: str, song_id: str | None = None) -> SearchOutcome:
        started = time.monotonic()
        candidates: list[LyricsResult] = []
        error: str | None = None

        try:
            candidates = await self._search(query, song_id)
            status: OutcomeStatus = "found" if candidates else "not_found"
        except Exception as e:
            status, error = classify_failure(e)

        if error:
            logger.warning("LRCLIB search failed for %r: %s", query, error)

        return SearchOutcome(
            provider=self.name,
            status=status,
            title=query,
            result=candidates[0] if candidates else None,
            candidates=candidates,
            error=error,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )


class TextylProvider(LyricsProvider):
    """Textyl: timed lines that are re-assembled into LRC text."""

    name = "textyl"
    display_name = "Textyl"

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        data = await self._get_json(
            settings.textyl_api_url,
            params={"q": f"{artist} {title}".strip()},
        )
        if not isinstance(data, list) or not data:
            return None

        lrc_lines: list[str] = []
        plain_lines: list[str] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            seconds = float(entry.get("seconds") or 0)
            text = entry.get("lyrics") or ""
            lrc_lines.append(f"{format_lrc_timestamp(seconds)}{text}")
            plain_lines.append(text)

        plain = "\n".join(plain_lines).strip()
        if not plain:
            return None

        return _build_result(
            song_id,
            self.display_name,
            plain,
            "\n".join(lrc_lines).strip(),
            artist=artist,
            title=title,
        )


class _PathLyricsProvider(LyricsProvider):
    """Plain-text APIs addressed as ``{base}/{artist}/{title}``."""

    base_url_setting: ClassVar[str]

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        base = getattr(settings, self.base_url_setting).rstrip("/")
        url = f"{base}/{quote(artist, safe='')}/{quote(title, safe='')}"
        data = await self._get_json(url)
        if not isinstance(data, dict):
            return None

        lyrics = (data.get("lyrics") or "").strip()
        if not lyrics:
            return None
        return _build_result(song_id, self.display_name, lyrics, artist=artist, title=title)


class LyricsOvhProvider(_PathLyricsProvider):
    name = "lyrics.ovh"
    display_name = "lyrics.ovh"
    base_url_setting = "lyrics_ovh_api_url"


class LyristProvider(_PathLyricsProvider):
    name = "lyrist"
    display_name = "Lyrist"
    base_url_setting = "lyrist_api_url"


class ChartLyricsProvider(LyricsProvider):
    """ChartLyrics: search for a lyric id, then fetch the lyric body."""

    name = "chartlyrics"
    display_name = "ChartLyrics"
    slow = True

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        base = settings.chartlyrics_api_url.rstrip("/")
        data = await self._get_json(
            f"{base}/search",
            params={"artist": artist or " ", "song": title},
        )
        if not isinstance(data, dict):
            return None

        candidates = data.get("GetLyricsResult") or []
        if not candidates or not isinstance(candidates[0], dict):
            return None
        match = candidates[0]
        lyric_id = match.get("LyricId")
        if not isinstance(lyric_id, int) or lyric_id <= 0:
            return None

        body = await self._get_json(f"{base}/Lyric/{lyric_id}")
        if not isinstance(body, dict):
            return None
        lyrics = (body.get("Lyric") or "").strip()
        if not lyrics:
            return None

        return _build_result(
            song_id,
            self.display_name,
            lyrics,
            result_id=f"{song_id}_chartlyrics_{lyric_id}",
            artist=match.get("Artist") or artist,
            title=match.get("Song") or title,
        )


class NetEaseProvider(LyricsProvider):
    """NetEase Cloud Music: song search, then lyrics by song id.

    The lyric body carries LRC markup but is reported as plain lyrics.
    Mostly useful for CJK content.
    """

    name = "netease"
    display_name = "NetEase Music"
    slow = True

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        base = settings.netease_api_url.rstrip("/")
        data = await self._get_json(
            f"{base}/search/song",
            params={"keywords": f"{artist} {title}".strip(), "limit": 1},
        )
        songs = ((data or {}).get("result") or {}).get("songs") or []
        if not songs or not isinstance(songs[0], dict):
            return None
        song = songs[0]
        netease_id = song.get("id")
        if not isinstance(netease_id, int) or netease_id <= 0:
            return None

        lyric_data = await self._get_json(
            f"{base}/song/lyric",
            params={"id": netease_id, "lv": -1},
        )
        lyrics = (((lyric_data or {}).get("lrc") or {}).get("lyric") or "").strip()
        if not lyrics:
            return None

        artists = song.get("artists") or []
        reported_artist = artists[0].get("name") if artists and isinstance(artists[0], dict) else None
        return _build_result(
            song_id,
            self.display_name,
            lyrics,
            result_id=f"{song_id}_netease_{netease_id}",
            artist=reported_artist or artist,
            title=song.get("name") or title,
        )


PROVIDER_CLASSES: dict[str, type[LyricsProvider]] = {
    cls.name: cls
    for cls in (
        LrclibProvider,
        TextylProvider,
        ChartLyricsProvider,
        LyricsOvhProvider,
        LyristProvider,
        NetEaseProvider,
    )
}


def build_providers(
    client: httpx.AsyncClient,
    priority: list[str] | None = None,
) -> list[LyricsProvider]:
    """Instantiate the direct adapters in priority order, skipping unknown names."""
    names = priority if priority is not None else settings.provider_priority_list
    providers: list[LyricsProvider] = []
    seen: set[str] = set()
    for name in names:
        cls = PROVIDER_CLASSES.get(name)
        if cls is None:
            logger.warning("Unknown lyrics provider '%s' in priority list", name)
            continue
        if name in seen:
            continue
        seen.add(name)
        providers.append(cls(client))
    return providers
