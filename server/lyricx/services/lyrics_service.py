"""Lyrics lookup service: parallel fan-out across providers with fallback."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from functools import partial

import httpx

from lyricx.config import settings
from lyricx.exceptions import InvalidQuery
from lyricx.models.lyrics import LyricsResult, ProviderOutcome, ResolveReport, SearchOutcome
from lyricx.services.providers import (
    LrclibSearchProvider,
    LyricsProvider,
    build_providers,
    create_http_client,
)
from lyricx.services.text import contains_non_latin, normalize_text, song_id as make_song_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryVariant:
    artist: str
    title: str

    @property
    def key(self) -> str:
        return f"{self.artist}|{self.title}".lower()


def build_query_variants(
    artist: str,
    title: str,
    clean_artist: str,
    clean_title: str,
) -> list[QueryVariant]:
    """Distinct (artist, title) pairs to try, original spelling first.

    The empty-artist variants cover players that under-report the artist.
    """
    variants: list[QueryVariant] = []
    seen: set[str] = set()
    for candidate in (
        QueryVariant(artist, title),
        QueryVariant(clean_artist, clean_title),
        QueryVariant("", title),
        QueryVariant("", clean_title),
    ):
        if not candidate.title.strip() and not candidate.artist.strip():
            continue
        if candidate.key in seen:
            continue
        seen.add(candidate.key)
        variants.append(candidate)
    return variants


def build_search_queries(
    artist: str,
    title: str,
    clean_artist: str,
    clean_title: str,
    limit: int,
) -> list[str]:
    queries: list[str] = []
    seen: set[str] = set()
    for query in (
        f"{artist} {title}",
        f"{clean_artist} {clean_title}",
        title,
        clean_title,
    ):
        query = " ".join(query.split())
        if not query or query.lower() in seen:
            continue
        seen.add(query.lower())
        queries.append(query)
    return queries[:limit]


def select_best(results: Iterable[LyricsResult | None]) -> LyricsResult | None:
    """Pick the first synced result, else the first plain one.

    ``results`` must be in dispatch order so the choice is reproducible
    regardless of which call finished first.
    """
    usable = [r for r in results if r is not None and r.plain_lyrics.strip()]
    for result in usable:
        if result.is_synced:
            return result
    return usable[0] if usable else None


def _collect(outcomes: Iterable[ProviderOutcome]) -> list[LyricsResult]:
    collected: list[LyricsResult] = []
    for outcome in outcomes:
        if isinstance(outcome, SearchOutcome) and outcome.candidates:
            collected.extend(outcome.candidates)
        elif outcome.result is not None:
            collected.append(outcome.result)
    return collected


class LyricsService:
    """Fans a lookup out to every provider and query variant at once.

    Breadth replaces retries: no single call is repeated, and any call that
    fails or exceeds its time budget simply counts as "no result".
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        providers: list[LyricsProvider] | None = None,
        search_provider: LrclibSearchProvider | None = None,
        call_timeout: float | None = None,
    ) -> None:
        self._owns_http = client is None and (providers is None or search_provider is None)
        self._http = create_http_client() if self._owns_http else client
        self._providers = providers if providers is not None else build_providers(self._http)
        self._search = search_provider or LrclibSearchProvider(self._http)
        self._call_timeout = call_timeout or settings.provider_call_timeout_seconds

    @property
    def providers(self) -> list[LyricsProvider]:
        return list(self._providers)

    def _provider(self, name: str) -> LyricsProvider | None:
        return next((p for p in self._providers if p.name == name), None)

    async def _guarded(
        self,
        call: Callable[[], Awaitable[ProviderOutcome]],
        provider: str,
        artist: str,
        title: str,
    ) -> ProviderOutcome:
        """Bound one call by the per-call timeout; never raises."""
        started = time.monotonic()
        try:
            return await asyncio.wait_for(call(), timeout=self._call_timeout)
        except asyncio.TimeoutError:
            status, error = "timeout", f"no answer within {self._call_timeout:g}s"
        except Exception as e:
            logger.exception("Provider %s raised for '%s' by '%s'", provider, title, artist)
            status, error = "error", f"{type(e).__name__}: {e}"
        return ProviderOutcome(
            provider=provider,
            status=status,
            artist=artist,
            title=title,
            error=error,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )

    def _dispatch_providers(self, is_non_latin: bool) -> list[LyricsProvider]:
        if is_non_latin or settings.slow_providers_for_latin:
            return list(self._providers)
        return [p for p in self._providers if not p.slow]

    async def resolve(self, artist: str, title: str) -> LyricsResult | None:
        """Best lyrics for (artist, title), preferring synced; None if none."""
        report = await self.resolve_with_report(artist, title)
        return report.result

    async def resolve_with_report(self, artist: str, title: str) -> ResolveReport:
        """Like ``resolve`` but also returns every call's outcome."""
        artist = artist or ""
        title = title or ""
        if not artist.strip() and not title.strip():
            raise InvalidQuery("Artist and title cannot both be empty")

        is_non_latin = contains_non_latin(f"{artist}{title}")
        clean_artist = normalize_text(artist, is_non_latin)
        clean_title = normalize_text(title, is_non_latin)
        song_id = make_song_id(artist, title)

        variants = build_query_variants(artist, title, clean_artist, clean_title)
        queries = build_search_queries(
            artist, title, clean_artist, clean_title, settings.lrclib_search_limit,
        )
        providers = self._dispatch_providers(is_non_latin)

        calls: list[Awaitable[ProviderOutcome]] = []
        for variant in variants:
            for provider in providers:
                calls.append(self._guarded(
                    partial(provider.fetch, variant.artist, variant.title, song_id),
                    provider.name, variant.artist, variant.title,
                ))
        for query in queries:
            calls.append(self._guarded(
                partial(self._search.search_outcome, query, song_id),
                self._search.name, "", query,
            ))

        logger.info(
            "Resolving '%s' by '%s': %d variants x %d providers + %d searches%s",
            title, artist, len(variants), len(providers), len(queries),
            " (non-Latin)" if is_non_latin else "",
        )

        # gather keeps dispatch order; cancelling resolve cancels every call
        outcomes = list(await asyncio.gather(*calls))
        best = select_best(_collect(outcomes))

        report = ResolveReport(
            artist=artist,
            title=title,
            song_id=song_id,
            is_non_latin=is_non_latin,
            result=best,
            outcomes=outcomes,
        )
        if best is not None:
            logger.info(
                "Lyrics for '%s' by '%s' from %s (%s)",
                title, artist, best.source, "synced" if best.is_synced else "plain",
            )
        elif report.all_failed:
            logger.warning(
                "Every provider call failed for '%s' by '%s'; providers may be unreachable",
                title, artist,
            )
        else:
            logger.info("No lyrics found for '%s' by '%s'", title, artist)
        return report

    async def search_online(self, query: str) -> list[LyricsResult]:
        """LRCLIB fuzzy search; candidates keep their own song identities."""
        query = " ".join((query or "").split())
        if not query:
            return []
        return await self._search.search(query)

    async def search_all_providers(
        self, artist: str, title: str,
    ) -> dict[str, LyricsResult | None]:
        """Ask every configured provider once, for side-by-side comparison."""
        song_id = make_song_id(artist, title)
        outcomes = await asyncio.gather(*(
            self._guarded(partial(provider.fetch, artist, title, song_id), provider.name, artist, title)
            for provider in self._providers
        ))
        return {outcome.provider: outcome.result for outcome in outcomes}

    async def search_by_query(self, query: str) -> list[LyricsResult]:
        """Free-form search: LRCLIB first, then direct lookups on a guessed split.

        ``"Artist - Title"`` and ``"Title by Artist"`` are recognised.
        """
        query = " ".join((query or "").split())
        if not query:
            return []

        results: list[LyricsResult] = []
        seen: set[str] = set()

        def add(candidates: Iterable[LyricsResult | None]) -> None:
            for candidate in candidates:
                if candidate is None or not candidate.plain_lyrics.strip():
                    continue
                if candidate.song_id in seen:
                    continue
                seen.add(candidate.song_id)
                results.append(candidate)

        add(await self._search.search(query))

        guessed = guess_artist_title(query)
        if guessed is not None:
            artist, title = guessed
            song_id = make_song_id(artist, title)
            direct = [
                p for p in (self._provider(n) for n in ("textyl", "lyrics.ovh", "lyrist"))
                if p is not None
            ]
            outcomes = await asyncio.gather(*(
                self._guarded(partial(p.fetch, artist, title, song_id), p.name, artist, title)
                for p in direct
            ))
            add(o.result for o in outcomes)

        if not results:
            textyl = self._provider("textyl")
            if textyl is not None:
                outcome = await self._guarded(
                    partial(textyl.fetch, "", query, make_song_id("", query)), textyl.name, "", query,
                )
                add([outcome.result])

        return results

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()


def guess_artist_title(query: str) -> tuple[str, str] | None:
    """Split ``"Artist - Title"`` or ``"Title by Artist"``; None if neither."""
    if " - " in query:
        parts = query.split(" - ")
        if len(parts) == 2 and parts[0].strip() and parts[1].strip():
            return parts[0].strip(), parts[1].strip()
        return None

    lowered = query.lower()
    if " by " in lowered:
        index = lowered.rfind(" by ")
        title = query[:index].strip()
        artist = query[index + 4:].strip()
        if title and artist:
            return artist, title
    return None
