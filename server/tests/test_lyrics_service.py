"""Tests for the fan-out LyricsService."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from lyricx.exceptions import InvalidQuery
from lyricx.models.lyrics import LyricsResult, ProviderOutcome, SearchOutcome
from lyricx.services.lrc_parser import parse
from lyricx.services.lyrics_service import (
    LyricsService,
    QueryVariant,
    _collect,
    build_query_variants,
    build_search_queries,
    guess_artist_title,
    select_best,
)
from lyricx.services.providers import LrclibProvider, LrclibSearchProvider, LyricsProvider


def make_result(
    source: str,
    plain: str = "la la la",
    synced: str | None = None,
    song_id: str = "sid",
) -> LyricsResult:
    return LyricsResult(
        id=f"{song_id}_{source}",
        song_id=song_id,
        plain_lyrics=plain,
        synced_lyrics=synced,
        source=source,
    )


class StubProvider(LyricsProvider):
    display_name = "Stub"

    def __init__(
        self,
        name: str,
        result: LyricsResult | None = None,
        *,
        only: set[tuple[str, str]] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
        slow: bool = False,
    ) -> None:
        super().__init__(MagicMock(spec=httpx.AsyncClient))
        self.name = name
        self.slow = slow
        self.result = result
        self.only = only
        self.delay = delay
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def _fetch(self, artist: str, title: str, song_id: str) -> LyricsResult | None:
        self.calls.append((artist, title))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.only is not None and (artist, title) not in self.only:
            return None
        return self.result


class ExplodingProvider(StubProvider):
    """Raises before producing an awaitable."""

    def fetch(self, artist, title, song_id):  # type: ignore[override]
        raise RuntimeError("exploded")


class StubSearch(LrclibSearchProvider):
    def __init__(self, candidates: list[LyricsResult] | None = None, error: Exception | None = None) -> None:
        super().__init__(MagicMock(spec=httpx.AsyncClient))
        self.candidates = candidates or []
        self.error = error
        self.queries: list[str] = []

    async def _search(self, query: str, song_id: str | None) -> list[LyricsResult]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        if song_id is None:
            return list(self.candidates)
        return [c.model_copy(update={"song_id": song_id}) for c in self.candidates]


def make_service(
    providers: list[LyricsProvider],
    search: StubSearch | None = None,
    call_timeout: float | None = None,
) -> LyricsService:
    return LyricsService(
        client=MagicMock(spec=httpx.AsyncClient),
        providers=providers,
        search_provider=search or StubSearch(),
        call_timeout=call_timeout,
    )


class TestQueryVariants:
    def test_dedupes_identical_clean_form(self):
        variants = build_query_variants("Adele", "Hello", "Adele", "Hello")
        assert variants == [QueryVariant("Adele", "Hello"), QueryVariant("", "Hello")]

    def test_all_four_when_cleaning_changes_title(self):
        variants = build_query_variants("Linkin Park", "Numb (Live)", "Linkin Park", "Numb")
        assert [(v.artist, v.title) for v in variants] == [
            ("Linkin Park", "Numb (Live)"),
            ("Linkin Park", "Numb"),
            ("", "Numb (Live)"),
            ("", "Numb"),
        ]

    def test_dedupe_is_case_insensitive(self):
        variants = build_query_variants("ADELE", "HELLO", "adele", "hello")
        assert len(variants) == 2

    def test_no_variant_issued_twice(self):
        variants = build_query_variants("", "Song", "", "Song")
        assert variants == [QueryVariant("", "Song")]


class TestSearchQueries:
    def test_queries(self):
        queries = build_search_queries("Linkin Park", "Numb (Live)", "Linkin Park", "Numb", limit=4)
        assert queries == ["Linkin Park Numb (Live)", "Linkin Park Numb", "Numb (Live)", "Numb"]

    def test_limit(self):
        queries = build_search_queries("Linkin Park", "Numb (Live)", "Linkin Park", "Numb", limit=2)
        assert len(queries) == 2

    def test_empty_artist_collapses(self):
        assert build_search_queries("", "Hello", "", "Hello", limit=4) == ["Hello"]


class TestSelectBest:
    def test_synced_beats_earlier_plain(self):
        plain = make_result("a")
        synced = make_result("b", synced="[00:01.00]la")
        assert select_best([plain, synced]) is synced

    def test_first_synced_wins(self):
        first = make_result("a", synced="[00:01.00]la")
        second = make_result("b", synced="[00:02.00]la")
        assert select_best([None, first, second]) is first

    def test_first_plain_when_no_synced(self):
        first = make_result("a")
        assert select_best([None, first, make_result("b")]) is first

    def test_ignores_empty_plain(self):
        empty = make_result("a", plain="   ", synced="[00:01.00]la")
        assert select_best([empty]) is None

    def test_nothing(self):
        assert select_best([]) is None


class TestCollect:
    def test_search_outcome_contributes_every_candidate(self):
        first = make_result("a")
        second = make_result("b", synced="[00:01.00]la")
        outcomes = [
            ProviderOutcome(provider="LRCLIB", status="found", result=make_result("c")),
            SearchOutcome(provider="LRCLIB search", status="found", result=first, candidates=[first, second]),
        ]

        assert [r.source for r in _collect(outcomes)] == ["c", "a", "b"]

    def test_skips_outcomes_without_result(self):
        outcomes = [
            ProviderOutcome(provider="Textyl", status="not_found"),
            SearchOutcome(provider="LRCLIB search", status="not_found"),
        ]

        assert _collect(outcomes) == []


class TestResolve:
    @pytest.mark.asyncio
    async def test_synced_wins_regardless_of_dispatch_order(self):
        plain = make_result("A")
        synced = make_result("B", synced="[00:01.00]la la la")
        service = make_service([StubProvider("a", plain), StubProvider("b", synced)])

        result = await service.resolve("Artist", "Song")

        assert result is synced

    @pytest.mark.asyncio
    async def test_tie_break_uses_dispatch_order_not_completion(self):
        late = make_result("late", synced="[00:01.00]late")
        early = make_result("early", synced="[00:01.00]early")
        service = make_service([
            StubProvider("late", late, delay=0.05),
            StubProvider("early", early),
        ])

        result = await service.resolve("Artist", "Song")

        assert result is late

    @pytest.mark.asyncio
    async def test_first_plain_when_nothing_synced(self):
        first = make_result("first")
        service = make_service([StubProvider("a", None), StubProvider("b", first), StubProvider("c", make_result("c"))])

        assert await service.resolve("Artist", "Song") is first

    @pytest.mark.asyncio
    async def test_every_provider_throwing_returns_none(self):
        boom = RuntimeError("provider down")
        service = make_service(
            [StubProvider("a", error=boom), StubProvider("b", error=boom), ExplodingProvider("c")],
            search=StubSearch(error=boom),
        )

        report = await service.resolve_with_report("Artist", "Song")

        assert report.result is None
        assert report.all_failed
        assert await service.resolve("Artist", "Song") is None

    @pytest.mark.asyncio
    async def test_exploding_provider_does_not_abort_siblings(self):
        good = make_result("good")
        service = make_service([ExplodingProvider("bad"), StubProvider("good", good)])

        report = await service.resolve_with_report("Artist", "Song")

        assert report.result is good
        assert {o.status for o in report.outcomes if o.provider == "bad"} == {"error"}

    @pytest.mark.asyncio
    async def test_per_call_timeout_counts_as_no_result(self):
        fast = make_result("fast")
        slow = StubProvider("slow", make_result("slow", synced="[00:01.00]x"), delay=5)
        service = make_service([slow, StubProvider("fast", fast)], call_timeout=0.05)

        report = await service.resolve_with_report("Artist", "Song")

        assert report.result is fast
        assert {o.status for o in report.outcomes if o.provider == "slow"} == {"timeout"}

    @pytest.mark.asyncio
    async def test_not_found_is_not_all_failed(self):
        service = make_service([StubProvider("a", None)])

        report = await service.resolve_with_report("Artist", "Song")

        assert report.result is None
        assert not report.all_failed

    @pytest.mark.asyncio
    async def test_both_empty_raises(self):
        service = make_service([StubProvider("a", None)])
        with pytest.raises(InvalidQuery):
            await service.resolve("", "  ")

    @pytest.mark.asyncio
    async def test_every_variant_dispatched_to_every_provider(self):
        provider = StubProvider("a", None)
        search = StubSearch()
        service = make_service([provider], search=search)

        await service.resolve("Linkin Park", "Numb (Live)")

        assert sorted(provider.calls) == sorted([
            ("Linkin Park", "Numb (Live)"),
            ("Linkin Park", "Numb"),
            ("", "Numb (Live)"),
            ("", "Numb"),
        ])
        assert sorted(search.queries) == sorted([
            "Linkin Park Numb (Live)", "Linkin Park Numb", "Numb (Live)", "Numb",
        ])

    @pytest.mark.asyncio
    async def test_empty_artist_variant_rescues_lookup(self):
        result = make_result("a")
        provider = StubProvider("a", result, only={("", "Hello")})
        service = make_service([provider])

        assert await service.resolve("Unknown Artist", "Hello") is result

    @pytest.mark.asyncio
    async def test_slow_providers_skipped_for_latin(self):
        fast = StubProvider("fast", None)
        slow = StubProvider("slow", None, slow=True)
        service = make_service([fast, slow])

        await service.resolve("Adele", "Hello")

        assert fast.calls
        assert slow.calls == []

    @pytest.mark.asyncio
    async def test_slow_providers_used_for_non_latin(self):
        slow = StubProvider("slow", make_result("slow"), slow=True)
        service = make_service([StubProvider("fast", None), slow])

        report = await service.resolve_with_report("米津玄師", "Lemon")

        assert report.is_non_latin
        assert slow.calls
        assert report.result is not None

    @pytest.mark.asyncio
    async def test_search_candidate_used_and_keyed_to_song(self):
        candidate = make_result("LRCLIB", synced="[00:01.00]x", song_id="someone_else")
        service = make_service([StubProvider("a", None)], search=StubSearch([candidate]))

        result = await service.resolve("Adele", "Hello")

        assert result is not None
        assert result.song_id == "adele_hello"

    @pytest.mark.asyncio
    async def test_end_to_end_with_lrclib(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/search"):
                return httpx.Response(200, json=[])
            return httpx.Response(200, json={
                "trackName": "Hello",
                "artistName": "Adele",
                "plainLyrics": "Hello, it's me",
                "syncedLyrics": "[00:18.00]Hello, it's me",
            })

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            service = LyricsService(
                client=client,
                providers=[LrclibProvider(client)],
                search_provider=LrclibSearchProvider(client),
            )
            result = await service.resolve("Adele", "Hello")

        assert result is not None
        assert result.is_synced
        assert result.song_id == "adele_hello"
        parsed = parse(result.synced_lyrics or "")
        assert len(parsed.lines) == 1
        assert parsed.lines[0].timestamp == timedelta(seconds=18)
        assert parsed.lines[0].text == "Hello, it's me"


class TestSearchHelpers:
    @pytest.mark.asyncio
    async def test_search_all_providers(self):
        found = make_result("a")
        service = make_service([StubProvider("a", found), StubProvider("b", None), StubProvider("c", error=ValueError("x"))])

        by_provider = await service.search_all_providers("Artist", "Song")

        assert by_provider == {"a": found, "b": None, "c": None}

    @pytest.mark.asyncio
    async def test_search_online_passes_query(self):
        candidate = make_result("LRCLIB", song_id="adele_hello")
        search = StubSearch([candidate])
        service = make_service([], search=search)

        results = await service.search_online("  adele   hello ")

        assert search.queries == ["adele hello"]
        assert results == [candidate]

    @pytest.mark.asyncio
    async def test_search_online_empty_query(self):
        search = StubSearch([make_result("x")])
        service = make_service([], search=search)
        assert await service.search_online("   ") == []
        assert search.queries == []

    @pytest.mark.asyncio
    async def test_search_by_query_uses_guessed_split(self):
        textyl = StubProvider("textyl", make_result("textyl", song_id="linkin_park_numb"))
        ovh = StubProvider("lyrics.ovh", make_result("ovh", song_id="linkin_park_numb"))
        lyrist = StubProvider("lyrist", None)
        service = make_service([textyl, ovh, lyrist])

        results = await service.search_by_query("Linkin Park - Numb")

        assert textyl.calls == [("Linkin Park", "Numb")]
        assert ovh.calls == [("Linkin Park", "Numb")]
        assert lyrist.calls == [("Linkin Park", "Numb")]
        # Deduplicated by song id
        assert [r.source for r in results] == ["textyl"]

    @pytest.mark.asyncio
    async def test_search_by_query_falls_back_to_title_only(self):
        textyl = StubProvider("textyl", make_result("textyl"), only={("", "some lyric line")})
        service = make_service([textyl])

        results = await service.search_by_query("some lyric line")

        assert textyl.calls == [("", "some lyric line")]
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_search_by_query_search_results_first(self):
        candidate = make_result("LRCLIB", song_id="adele_hello")
        service = make_service([StubProvider("textyl", None)], search=StubSearch([candidate]))

        results = await service.search_by_query("Hello by Adele")

        assert results[0] is candidate


class TestGuessArtistTitle:
    @pytest.mark.parametrize(
        "query, expected",
        [
            ("Linkin Park - Numb", ("Linkin Park", "Numb")),
            ("Numb by Linkin Park", ("Linkin Park", "Numb")),
            ("Stand By Me by Ben E. King", ("Ben E. King", "Stand By Me")),
            ("just a title", None),
            ("a - b - c", None),
            (" - Numb", None),
        ],
    )
    def test_guess(self, query, expected):
        assert guess_artist_title(query) == expected


class TestClientOwnership:
    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = MagicMock(spec=httpx.AsyncClient)
        client.aclose = AsyncMock()
        service = LyricsService(client=client, providers=[], search_provider=StubSearch())

        await service.aclose()

        client.aclose.assert_not_awaited()
