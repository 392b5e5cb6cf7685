import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query

from lyricx.api.deps import get_repository
from lyricx.exceptions import InvalidQuery, LyricsNotFound, LyricsTimeout
from lyricx.models.lyrics import LrcParseRequest, LyricsFetchRequest
from lyricx.models.media import Song
from lyricx.services import lrc_parser
from lyricx.services.lyrics_repository import LyricsRepository
from lyricx.services.text import song_id as make_song_id

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/fetch")
async def fetch_lyrics(
    request: LyricsFetchRequest,
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    """Fetch lyrics by title and artist, from the cache when possible."""
    song = Song(
        id=make_song_id(request.artist, request.title),
        title=request.title,
        artist=request.artist,
        album=request.album,
    )
    try:
        result = await repository.get_lyrics(song, force_refresh=request.force_refresh)
    except InvalidQuery as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LyricsNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LyricsTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))

    return {"lyrics": result.model_dump(mode="json")}


@router.get("/search")
async def search_lyrics(
    q: str = Query(min_length=1),
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    """Free-form online search, e.g. ``Artist - Title``."""
    results = await repository.search_online(q)
    return {"query": q, "results": [r.model_dump(mode="json") for r in results]}


@router.get("/providers")
async def compare_providers(
    artist: str = "",
    title: str = "",
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    """Ask every provider once and show what each returned."""
    if not artist.strip() and not title.strip():
        raise HTTPException(status_code=400, detail="Artist and title cannot both be empty")

    by_provider = await repository.search_all_providers(artist, title)
    return {
        "providers": {
            name: result.model_dump(mode="json") if result is not None else None
            for name, result in by_provider.items()
        }
    }


@router.get("/cache")
async def list_cached_lyrics(
    q: str | None = None,
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    if q:
        entries = await repository.search_cached_lyrics(q)
    else:
        entries = await repository.get_all_cached_lyrics()
    return {
        "entries": [e.model_dump(mode="json") for e in entries],
        "size_bytes": await repository.cache.size(),
    }


@router.get("/cache/{song_id}")
async def get_cached_lyrics(
    song_id: str,
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    result = await repository.get_cached_lyrics(song_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No cached lyrics for this song")
    return {"lyrics": result.model_dump(mode="json")}


@router.delete("/cache/{song_id}")
async def delete_cached_lyrics(
    song_id: str,
    repository: LyricsRepository = Depends(get_repository),
) -> dict:
    if not await repository.delete_cached_lyrics(song_id):
        raise HTTPException(status_code=404, detail="No cached lyrics for this song")
    logger.info("Deleted cached lyrics for %s", song_id)
    return {"deleted": song_id}


@router.post("/parse")
async def parse_lrc(request: LrcParseRequest) -> dict:
    """Parse LRC text; with ``position_ms`` also report the active line."""
    if not lrc_parser.is_valid_lrc(request.text):
        raise HTTPException(status_code=400, detail="Text contains no LRC time tags")

    parsed = await lrc_parser.parse_async(request.text)
    response: dict = {
        "title": parsed.title,
        "artist": parsed.artist,
        "album": parsed.album,
        "author": parsed.author,
        "offset_ms": int(parsed.offset.total_seconds() * 1000) if parsed.offset is not None else None,
        "lines": [{"start_ms": line.start_ms, "text": line.text} for line in parsed.lines],
        "plain_text": lrc_parser.to_plain_text(parsed),
    }
    if request.position_ms is not None:
        response["line_index"] = parsed.line_index_at_time(
            timedelta(milliseconds=request.position_ms)
        )
    return response
