# core/models.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PlaybackStatus(Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, value) -> "PlaybackStatus":
        """Map an MPRIS PlaybackStatus string; anything unknown is Stopped."""
        try:
            return cls(str(value))
        except ValueError:
            return cls.STOPPED


@dataclass(frozen=True)
class TimelineEntry:
    start_ms: int
    end_ms: int
    text: str


@dataclass(frozen=True)
class LyricLine:
    text: str
    fraction: float


EMPTY_LINE = LyricLine(text="", fraction=0.0)


@dataclass(frozen=True)
class PlaybackEstimate:
    position_ms: int
    captured_at: float  # monotonic seconds


@dataclass
class PlayerRecord:
    id: str
    is_video: bool = False
    playback_status: PlaybackStatus = PlaybackStatus.STOPPED
    current_title: Optional[str] = None


@dataclass(frozen=True)
class SongInfo:
    title: str
    artists: tuple[str, ...] = ()
    album: str = ""
    length_ms: int = 0
    lyric: Optional[str] = None
    url: Optional[str] = None

    def same_song(self, other: Optional["SongInfo"]) -> bool:
        # length is left out: some players report a jumping length for one track
        if other is None:
            return False
        return (
            self.title == other.title
            and self.album == other.album
            and self.lyric == other.lyric
            and self.artists == other.artists
        )


PREF_AUTO = ""
PREF_NONE = "none"


@dataclass(frozen=True)
class SelectionPreference:
    """Auto, None (explicit silence) or a pinned player bus name."""
    player: str = PREF_AUTO

    @classmethod
    def auto(cls) -> "SelectionPreference":
        return cls(PREF_AUTO)

    @classmethod
    def none(cls) -> "SelectionPreference":
        return cls(PREF_NONE)

    @classmethod
    def pinned(cls, player_id: str) -> "SelectionPreference":
        if not player_id or player_id == PREF_NONE:
            raise ValueError(f"Invalid player id: {player_id!r}")
        return cls(player_id)

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "SelectionPreference":
        return cls((value or PREF_AUTO).strip())

    def to_setting(self) -> str:
        return self.player

    @property
    def is_auto(self) -> bool:
        return self.player == PREF_AUTO

    @property
    def is_none(self) -> bool:
        return self.player == PREF_NONE

    @property
    def pinned_id(self) -> Optional[str]:
        if self.is_auto or self.is_none:
            return None
        return self.player


@dataclass(frozen=True)
class VerifyResult:
    connected: bool
    has_media: bool


@dataclass(frozen=True)
class LyricsResult:
    plain: Optional[str]
    synced: Optional[str]
    instrumental: bool
    source: str  # "get" | "search" | "none"

