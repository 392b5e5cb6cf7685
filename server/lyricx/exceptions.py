"""LyricX exception hierarchy."""


class LyricXError(Exception):
    """Base exception for all lyricx errors."""
    pass


class InvalidQuery(LyricXError, ValueError):
    """Both artist and title are empty; nothing to look up."""
    pass


class LyricsNotFound(LyricXError):
    """Every provider and query variant came back empty."""

    def __init__(self, artist: str, title: str, message: str | None = None):
        self.artist = artist
        self.title = title
        super().__init__(message or f'Lyrics not found for "{title}" by "{artist}"')


class LyricsTimeout(LyricXError):
    """The whole lookup exceeded the caller-level time budget."""

    def __init__(self, artist: str, title: str, timeout: float):
        self.artist = artist
        self.title = title
        self.timeout = timeout
        super().__init__(
            f'Lyrics lookup for "{title}" by "{artist}" took longer than {timeout:g}s'
        )
