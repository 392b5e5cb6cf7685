from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


def _to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


OutcomeStatus = Literal["found", "not_found", "error", "timeout"]


class LyricsResult(BaseModel):
    """Lyrics for one song as reported by a single provider.

    Serialized with camelCase keys; this is also the shape stored in the
    local cache.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    id: str
    song_id: str
    plain_lyrics: str = ""
    synced_lyrics: str | None = None
    source: str
    fetched_at: datetime = Field(default_factory=_utcnow)
    artist_name: str | None = None
    track_name: str | None = None
    album_name: str | None = None

    @computed_field(alias="isSynced")  # type: ignore[prop-decorator]
    @property
    def is_synced(self) -> bool:
        return bool(self.synced_lyrics and self.synced_lyrics.strip())

    @property
    def has_lyrics(self) -> bool:
        return bool(self.plain_lyrics.strip()) or self.is_synced


class ProviderOutcome(BaseModel):
    """What happened to one provider call during a fan-out pass.

    Adapters never raise; every failure is absorbed into one of these so
    callers can tell "the provider said no" apart from "the call failed".
    """

    provider: str
    status: OutcomeStatus
    artist: str = ""
    title: str = ""
    result: LyricsResult | None = None
    error: str | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "found" and self.result is not None


class ResolveReport(BaseModel):
    """The selected result plus the per-call outcome log of a resolve pass."""

    artist: str
    title: str
    song_id: str
    is_non_latin: bool = False
    result: LyricsResult | None = None
    outcomes: list[ProviderOutcome] = Field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        """True when no call completed normally (shared outage, not a miss)."""
        return bool(self.outcomes) and all(
            o.status in ("error", "timeout") for o in self.outcomes
        )


class LyricsFetchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    title: str
    artist: str
    album: str | None = None
    force_refresh: bool = False


class LrcParseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    text: str
    position_ms: int | None = None


class SearchOutcome(ProviderOutcome):
    """Outcome of a fuzzy search call; ``result`` is the first candidate."""

    candidates: list[LyricsResult] = Field(default_factory=list)
