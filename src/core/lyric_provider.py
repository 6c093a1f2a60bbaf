# core/lyric_provider.py
from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from core.lrclib_client import LrcLibClient
from core.local_lyrics import (
    local_path_from_url,
    read_embedded_synced_lyrics,
    read_lyric_location,
    read_sidecar_lrc,
)
from core.models import SongInfo
from core.utils import format_song
from db.database import delete_cached_lyric, get_cached_lyric, put_cached_lyric, song_key
from db.models import Config

logger = logging.getLogger(__name__)


class LyricNotFound(LookupError):
    pass


class LyricProvider:
    """
    Finds raw lyric text for a song. Sources, in order:
      1. sqlite cache (skipped on reload)
      2. <lyric_location>/Title-Artists-Album.lrc
      3. sidecar .lrc / embedded tags of a local file:// track
      4. LRCLIB, when online lyrics are enabled
    Blocking; run it off the GUI thread.
    """

    def __init__(self, db: Optional[sqlite3.Connection], config: Config, client: Optional[LrcLibClient] = None):
        self.db = db
        self.config = config
        self.client = client or LrcLibClient(base_url=config.lrclib_instance)

    def find(self, song: SongInfo, reload: bool = False) -> str:
        key = song_key(song)

        if not reload and self.db is not None:
            cached = get_cached_lyric(self.db, key)
            if cached is not None and cached.lrc_lyrics:
                logger.debug("Lyric cache hit for %s", key)
                return cached.lrc_lyrics

        text = read_lyric_location(self.config.lyric_location, song)
        if text:
            return text

        path = local_path_from_url(song.url)
        if path:
            text = read_sidecar_lrc(path) or read_embedded_synced_lyrics(path)
            if text:
                return text

        if not self.config.online_lyrics:
            if reload:
                self.forget(song)
            raise LyricNotFound(format_song(song))

        try:
            result = self.client.fetch_best(song)
        except Exception:
            if reload:
                self.forget(song)
            raise

        if not result.synced or result.instrumental:
            if reload:
                self.forget(song)
            raise LyricNotFound(format_song(song))

        self._store(key, result.synced, f"lrclib-{result.source}")
        return result.synced

    def _store(self, key: str, text: str, source: str) -> None:
        if self.db is None:
            return
        try:
            put_cached_lyric(self.db, key, text, source)
        except sqlite3.Error as e:
            logger.warning("Failed to cache lyrics for %s: %s", key, e)

    def forget(self, song: SongInfo) -> None:
        """Drop a (bad) cache entry."""
        if self.db is None:
            return
        delete_cached_lyric(self.db, song_key(song))
        logger.info("Removed cached lyrics for %s", format_song(song))
