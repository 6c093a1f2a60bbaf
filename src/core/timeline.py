# core/timeline.py
from __future__ import annotations

import logging
import re
from bisect import bisect_right
from typing import Iterable, List, Optional, Sequence, Tuple

from core.models import EMPTY_LINE, LyricLine, TimelineEntry

logger = logging.getLogger(__name__)

# one or more leading [..] blocks, then the line text
_TAG_RUN_RE = re.compile(r"^\s*((?:\[[^\[\]]*\])+)(.*)$")
_TAG_RE = re.compile(r"\[([^\[\]]*)\]")
_NUM_RE = re.compile(r"^\d+(?:\.\d*)?$")


def parse_timestamp(tag: str) -> Optional[int]:
    """
    Convert the inside of a time tag to milliseconds.

    Colon separated groups are read right to left as seconds, minutes, hours:
      "01:02.50"   -> 62500
      "1:00:00"    -> 3600000
    Returns None for anything that is not a time value (e.g. "ar:Someone").
    """
    t = (tag or "").strip().replace(",", ".")
    if not t:
        return None

    parts = t.split(":")
    if len(parts) > 3:
        return None

    total = 0.0
    for i, part in enumerate(reversed(parts)):
        part = part.strip()
        if not _NUM_RE.match(part):
            return None
        total += float(part) * (60 ** i)

    return int(round(total * 1000))


def _iter_tagged(raw_text: str) -> Iterable[Tuple[int, str]]:
    for raw_line in raw_text.splitlines():
        m = _TAG_RUN_RE.match(raw_line)
        if not m:
            continue

        text = m.group(2).strip()
        for tag in _TAG_RE.findall(m.group(1)):
            ms = parse_timestamp(tag)
            if ms is None:
                logger.debug("Dropping lyric tag [%s]", tag)
                continue
            yield ms, text


def build_timeline(raw_text: Optional[str], duration_ms: Optional[int] = None) -> List[TimelineEntry]:
    """
    Parse tagged lyric text into entries sorted by start time.

    A line with several tags ("[00:00.00][00:10.00]chorus") yields one entry per
    tag. Entries sharing a start time keep their order in the source text.
    The last entry ends at duration_ms, or at its own start when the duration is
    unknown.
    """
    if not raw_text:
        return []

    # list.sort is stable: equal start times keep encounter order
    tagged = sorted(_iter_tagged(raw_text), key=lambda x: x[0])
    if not tagged:
        return []

    out: List[TimelineEntry] = []
    for i, (start, text) in enumerate(tagged):
        if i + 1 < len(tagged):
            end = tagged[i + 1][0]
        else:
            end = max(int(duration_ms or 0), start)
        out.append(TimelineEntry(start_ms=start, end_ms=end, text=text))
    return out


def lookup(timeline: Sequence[TimelineEntry], position_ms: int) -> LyricLine:
    """Active line and progress fraction in [0, 1] for a playback position."""
    starts = [e.start_ms for e in timeline]
    return _lookup(timeline, starts, position_ms)


def _lookup(entries: Sequence[TimelineEntry], starts: Sequence[int], position_ms: int) -> LyricLine:
    if not entries:
        return EMPTY_LINE

    idx = bisect_right(starts, position_ms) - 1
    if idx < 0:
        return EMPTY_LINE

    entry = entries[idx]
    span = entry.end_ms - entry.start_ms
    if span <= 0 or position_ms >= entry.end_ms:
        return LyricLine(entry.text, 1.0)

    return LyricLine(entry.text, (position_ms - entry.start_ms) / span)


class Timeline:
    """Immutable index over a parsed lyric document."""

    def __init__(self, entries: Sequence[TimelineEntry] = ()):
        self._entries: Tuple[TimelineEntry, ...] = tuple(entries)
        self._starts: List[int] = [e.start_ms for e in self._entries]

    @classmethod
    def parse(cls, raw_text: Optional[str], duration_ms: Optional[int] = None) -> "Timeline":
        return cls(build_timeline(raw_text, duration_ms))

    @property
    def entries(self) -> Tuple[TimelineEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def lookup(self, position_ms: int) -> LyricLine:
        return _lookup(self._entries, self._starts, position_ms)

    def with_duration(self, duration_ms: Optional[int]) -> "Timeline":
        """Copy with the last entry stretched (or shrunk) to a new track length."""
        if not self._entries:
            return self
        last = self._entries[-1]
        end = max(int(duration_ms or 0), last.start_ms)
        if end == last.end_ms:
            return self
        return Timeline(self._entries[:-1] + (TimelineEntry(last.start_ms, end, last.text),))
