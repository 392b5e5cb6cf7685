from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lyricx.models.lyrics import _to_camel

TransportCommand = Literal["play", "pause", "next", "previous", "seek"]


class MediaState(BaseModel):
    """A now-playing snapshot reported by the host's media-session bridge."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    artwork_url: str | None = None
    duration_ms: int = Field(ge=0, default=0)
    position_ms: int = Field(ge=0, default=0)
    is_playing: bool = False
    source_app: str = ""

    @property
    def has_track(self) -> bool:
        return bool((self.title or "").strip() and (self.artist or "").strip())


class Song(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    id: str
    title: str
    artist: str
    album: str | None = None
    artwork_url: str | None = None
    duration_ms: int | None = None
    source: str | None = None


class MediaCommandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

    command: TransportCommand
    position_ms: int | None = Field(ge=0, default=None)
