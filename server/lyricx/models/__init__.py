from lyricx.models.lyrics import (
    LrcParseRequest,
    LyricsFetchRequest,
    LyricsResult,
    ProviderOutcome,
    ResolveReport,
    SearchOutcome,
)
from lyricx.models.lrc import LrcLine, ParsedLrc
from lyricx.models.media import MediaCommandRequest, MediaState, Song

__all__ = [
    "LrcParseRequest",
    "LyricsFetchRequest",
    "LyricsResult",
    "ProviderOutcome",
    "ResolveReport",
    "SearchOutcome",
    "LrcLine",
    "ParsedLrc",
    "MediaCommandRequest",
    "MediaState",
    "Song",
]
