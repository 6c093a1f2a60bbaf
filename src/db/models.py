from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import sqlite3


@dataclass(frozen=True)
class Config:
    preferred_player: str = ""          # "" auto, "none", or a bus name
    refresh_interval: int = 60          # ms
    allow_video_players: bool = True
    online_lyrics: bool = True
    lrclib_instance: str = "https://lrclib.net"
    lyric_location: str = ""
    active_color: str = "#643296"
    inactive_color: str = "#f5f5f5"
    show_progress: bool = True

    @staticmethod
    def from_row(row: sqlite3.Row) -> "Config":
        return Config(
            preferred_player=row["preferred_player"] or "",
            refresh_interval=int(row["refresh_interval"]),
            allow_video_players=bool(row["allow_video_players"]),
            online_lyrics=bool(row["online_lyrics"]),
            lrclib_instance=row["lrclib_instance"] or "https://lrclib.net",
            lyric_location=row["lyric_location"] or "",
            active_color=row["active_color"],
            inactive_color=row["inactive_color"],
            show_progress=bool(row["show_progress"]),
        )


@dataclass
class CachedLyric:
    song_key: str
    lrc_lyrics: Optional[str]
    source: str
    updated_at: int

    @staticmethod
    def from_row(row: sqlite3.Row) -> "CachedLyric":
        return CachedLyric(
            song_key=row["song_key"],
            lrc_lyrics=row["lrc_lyrics"],
            source=row["source"],
            updated_at=int(row["updated_at"]),
        )
