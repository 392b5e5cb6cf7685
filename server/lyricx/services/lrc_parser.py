"""Parser for LRC (time-tagged lyrics) text.

A line carries one or more ``[mm:ss.xx]`` / ``[mm:ss.xxx]`` tags followed by
the lyric text; several leading tags mean the same text is sung at each cue.
Header lines such as ``[ti:Title]`` or ``[offset:+250]`` carry metadata.
Malformed lines are skipped rather than failing the whole document.
"""

import asyncio
import logging
import math
import re
from datetime import timedelta

from lyricx.models.lrc import LrcLine, ParsedLrc

logger = logging.getLogger(__name__)

_TIME_TAG = re.compile(r"\[(\d{2,}):(\d{2})\.(\d{2,3})\]")
_META_TAG = re.compile(r"^\[(ti|ar|al|au|offset|length|by):(.+?)\]", re.IGNORECASE)
_LEADING_TIME_TAG = re.compile(r"^\[\d{2,}:\d{2}\.\d{2,3}\]")


def is_valid_lrc(text: str) -> bool:
    """True if ``text`` contains at least one timestamp tag."""
    return bool(_TIME_TAG.search(text or ""))


def _tag_to_timedelta(match: re.Match[str]) -> timedelta:
    minutes, seconds, fraction = match.groups()
    return timedelta(
        minutes=int(minutes),
        seconds=int(seconds),
        milliseconds=int(fraction.ljust(3, "0")),
    )


def parse(text: str) -> ParsedLrc:
    meta: dict[str, str] = {}
    offset: timedelta | None = None
    entries: list[LrcLine] = []

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        meta_match = _META_TAG.match(line)
        if meta_match:
            tag = meta_match.group(1).lower()
            value = meta_match.group(2).strip()
            if tag == "ti":
                meta["title"] = value
            elif tag == "ar":
                meta["artist"] = value
            elif tag == "al":
                meta["album"] = value
            elif tag in ("au", "by"):
                meta["author"] = value
            elif tag == "offset":
                try:
                    offset = timedelta(milliseconds=int(value))
                except ValueError:
                    logger.debug("Ignoring malformed LRC offset %r", value)
            continue

        matches = list(_TIME_TAG.finditer(line))
        if not matches:
            continue

        lyric = line[matches[-1].end():].strip()
        for match in matches:
            entries.append(LrcLine(timestamp=_tag_to_timedelta(match), text=lyric))

    # sorted() is stable: lines sharing a timestamp keep their input order
    entries = sorted(entries, key=lambda entry: entry.timestamp)

    return ParsedLrc(offset=offset, lines=tuple(entries), **meta)


async def parse_async(text: str) -> ParsedLrc:
    """Parse off the event loop; used for large documents."""
    return await asyncio.to_thread(parse, text)


def to_plain_text(parsed: ParsedLrc) -> str:
    return "\n".join(line.text for line in parsed.lines)


def extract_plain_from_lrc(lrc: str) -> str:
    """Strip the leading timestamp from every line and drop tag-only lines."""
    kept: list[str] = []
    for raw_line in (lrc or "").splitlines():
        text = _LEADING_TIME_TAG.sub("", raw_line.strip()).strip()
        if text and not text.startswith("["):
            kept.append(text)
    return "\n".join(kept)


def format_lrc_timestamp(seconds: float) -> str:
    """Format a position in seconds as an ``[mm:ss.xx]`` tag."""
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0
    # Round to centiseconds first so 59.999 becomes [01:00.00], not [00:60.00]
    minutes, centis = divmod(round(seconds * 100), 6000)
    return f"[{minutes:02d}:{centis / 100:05.2f}]"
