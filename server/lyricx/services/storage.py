"""JSON-file lyrics cache keyed by song identity.

The whole cache is one serialized mapping stored under a single key of a
small key-value document, so other keys in the same file are preserved.
Unreadable or corrupted data is treated as an empty cache.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from lyricx.config import settings
from lyricx.models.lyrics import LyricsResult

logger = logging.getLogger(__name__)


class LyricsCache:
    """Song id -> last fetched ``LyricsResult``. Last writer wins."""

    def __init__(self, path: str | Path | None = None, key: str | None = None) -> None:
        self._path = Path(path) if path else None
        self._key = key or settings.cache_key
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        if self._path is None:
            return settings.cache_file
        self._path.parent.mkdir(parents=True, exist_ok=True)
        return self._path

    async def _read_document(self) -> dict[str, Any]:
        path = self.path
        if not await aiofiles.os.path.exists(path):
            return {}
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                raw = await f.read()
            document = json.loads(raw) if raw.strip() else {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Lyrics cache at %s is unreadable; treating as empty", path)
            return {}
        return document if isinstance(document, dict) else {}

    async def _read_entries(self) -> dict[str, Any]:
        entries = (await self._read_document()).get(self._key)
        return entries if isinstance(entries, dict) else {}

    async def _write_entries(self, entries: dict[str, Any]) -> None:
        document = await self._read_document()
        document[self._key] = entries
        path = self.path
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(document, ensure_ascii=False))
        await aiofiles.os.replace(tmp_path, path)

    @staticmethod
    def _load(song_id: str, entry: Any) -> LyricsResult | None:
        try:
            return LyricsResult.model_validate(entry)
        except ValidationError:
            logger.warning("Dropping malformed cache entry for %s", song_id)
            return None

    async def get(self, song_id: str) -> LyricsResult | None:
        entries = await self._read_entries()
        if song_id not in entries:
            return None
        return self._load(song_id, entries[song_id])

    async def put(self, result: LyricsResult) -> None:
        async with self._lock:
            entries = await self._read_entries()
            entries[result.song_id] = result.model_dump(mode="json", by_alias=True)
            await self._write_entries(entries)

    async def all(self) -> list[LyricsResult]:
        entries = await self._read_entries()
        loaded = (self._load(song_id, entry) for song_id, entry in entries.items())
        return [result for result in loaded if result is not None]

    async def delete(self, song_id: str) -> bool:
        async with self._lock:
            entries = await self._read_entries()
            if entries.pop(song_id, None) is None:
                return False
            await self._write_entries(entries)
            return True

    async def search(self, query: str) -> list[LyricsResult]:
        """Cached results whose lyrics or song id contain ``query``."""
        needle = query.lower()
        return [
            result for result in await self.all()
            if needle in result.plain_lyrics.lower() or needle in result.song_id.lower()
        ]

    async def clear(self) -> None:
        async with self._lock:
            await self._write_entries({})

    async def size(self) -> int:
        """Size in bytes of the serialized mapping."""
        entries = await self._read_entries()
        if not entries:
            return 0
        return len(json.dumps(entries, ensure_ascii=False).encode("utf-8"))


# Singleton instance
lyrics_cache = LyricsCache()
