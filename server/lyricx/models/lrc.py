from bisect import bisect_right
from datetime import timedelta

from pydantic import BaseModel, ConfigDict


class LrcLine(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_timedelta="float")

    timestamp: timedelta
    text: str

    @property
    def start_ms(self) -> int:
        return int(self.timestamp.total_seconds() * 1000)

    def __str__(self) -> str:
        return f"[{self.timestamp}] {self.text}"


class ParsedLrc(BaseModel):
    """Time-tagged lyrics, sorted ascending by timestamp.

    Immutable once built; re-parse when the source text changes.
    """

    model_config = ConfigDict(frozen=True, ser_json_timedelta="float")

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    author: str | None = None
    offset: timedelta | None = None
    lines: tuple[LrcLine, ...] = ()

    def _adjust(self, position: timedelta) -> timedelta:
        return position - self.offset if self.offset is not None else position

    def line_index_at_time(self, position: timedelta) -> int:
        """Index of the last line at or before ``position``, or -1."""
        if not self.lines:
            return -1
        adjusted = self._adjust(position)
        return bisect_right(self.lines, adjusted, key=lambda line: line.timestamp) - 1

    def line_at_time(self, position: timedelta) -> LrcLine | None:
        index = self.line_index_at_time(position)
        return self.lines[index] if index >= 0 else None
