"""Search-text normalization and song identity keys."""

import re

# Devanagari, CJK unified ideographs, Hiragana/Katakana, Hangul syllables, Arabic
_NON_LATIN = re.compile(r"[\u0900-\u097F\u4E00-\u9FFF\u3040-\u30FF\uAC00-\uD7AF\u0600-\u06FF]")

_DOUBLE_QUOTES = re.compile(r"[\u201C\u201D\u201E\u201F\u2033\u00AB\u00BB]")
_SINGLE_QUOTES = re.compile(r"[\u2018\u2019\u201A\u201B\u2032\u00B4`]")
_WHITESPACE = re.compile(r"\s+")

_PARENTHESES = re.compile(r"\s*\(.*?\)\s*")
_BRACKETS = re.compile(r"\s*\[.*?\]\s*")
_JUNK_SUFFIX = re.compile(r"\s*-\s*(Official|Audio|Video|Lyrics|HD|HQ|4K).*", re.IGNORECASE)
_PIPE_TAIL = re.compile(r"\s*\|\s*.*$")

_ID_INVALID = re.compile(r"[^a-z0-9_]")
_ID_RUNS = re.compile(r"_+")


def contains_non_latin(text: str) -> bool:
    """True if ``text`` has Devanagari, CJK, Kana, Hangul or Arabic characters."""
    return bool(_NON_LATIN.search(text))


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _normalize_quotes(text: str) -> str:
    text = _DOUBLE_QUOTES.sub('"', text)
    return _SINGLE_QUOTES.sub("'", text)


def normalize_text(text: str, is_non_latin: bool = False) -> str:
    """Clean an artist or title string for lookup.

    Non-Latin text only gets quote and whitespace cleanup, since bracketed
    parts of such titles often carry the disambiguation. Latin text also
    loses bracketed content, "- Official Video" style suffixes and anything
    after a pipe.
    """
    cleaned = _collapse(text)
    if is_non_latin:
        return _collapse(_normalize_quotes(cleaned))

    cleaned = _PARENTHESES.sub(" ", cleaned)
    cleaned = _BRACKETS.sub(" ", cleaned)
    cleaned = _JUNK_SUFFIX.sub("", cleaned)
    cleaned = _PIPE_TAIL.sub("", cleaned)
    cleaned = _normalize_quotes(cleaned)
    return _collapse(cleaned)


def song_id(artist: str, title: str) -> str:
    """Deterministic cache key for an (artist, title) pair."""
    key = f"{artist}_{title}".lower()
    key = _ID_INVALID.sub("_", key)
    return _ID_RUNS.sub("_", key)
