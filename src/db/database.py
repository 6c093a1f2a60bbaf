import logging
import os
import sqlite3
import time
from typing import Optional

from core.utils import format_song, prepare_input
from db.models import CachedLyric, Config

logger = logging.getLogger(__name__)

CURRENT_DB_VERSION = 3

def initialize_database(app_data_dir: str) -> sqlite3.Connection:
    os.makedirs(app_data_dir, exist_ok=True)
    sqlite_path = os.path.join(app_data_dir, "db.sqlite3")
    logger.info("Database file path: %s", sqlite_path)
    return open_database(sqlite_path)

def open_database(sqlite_path: str) -> sqlite3.Connection:
    db = sqlite3.connect(sqlite_path)
    db.row_factory = sqlite3.Row

    existing_version = int(db.execute("PRAGMA user_version").fetchone()[0])
    upgrade_database_if_needed(db, existing_version)

    return db

def upgrade_database_if_needed(db: sqlite3.Connection, existing_version: int):
    logger.debug("Existing database version: %s", existing_version)

    if existing_version >= CURRENT_DB_VERSION:
        return

    if existing_version <= 0:
        logger.info("Migrate database version 1...")
        db.execute("PRAGMA journal_mode=WAL")
        db.execute("PRAGMA user_version=1")
        db.executescript("""
            CREATE TABLE config_data (
                id INTEGER PRIMARY KEY,
                preferred_player TEXT DEFAULT '',
                refresh_interval INTEGER DEFAULT 60,
                online_lyrics BOOLEAN DEFAULT 1,
                lrclib_instance TEXT DEFAULT 'https://lrclib.net',
                lyric_location TEXT DEFAULT ''
            );
            CREATE TABLE lyrics_cache (
                id INTEGER PRIMARY KEY,
                song_key TEXT UNIQUE,
                lrc_lyrics TEXT,
                updated_at INTEGER
            );
            INSERT INTO config_data (preferred_player) VALUES ('');
        """)
        db.commit()

    if existing_version <= 1:
        logger.info("Migrate database version 2...")
        db.execute("PRAGMA user_version=2")
        db.executescript("""
            ALTER TABLE config_data ADD COLUMN allow_video_players BOOLEAN DEFAULT 1;
            ALTER TABLE lyrics_cache ADD COLUMN source TEXT DEFAULT 'lrclib';
            CREATE INDEX idx_lyrics_cache_song_key ON lyrics_cache(song_key);
        """)
        db.commit()

    if existing_version <= 2:
        logger.info("Migrate database version 3...")
        db.execute("PRAGMA user_version=3")
        db.executescript("""
            ALTER TABLE config_data ADD COLUMN active_color TEXT DEFAULT '#643296';
            ALTER TABLE config_data ADD COLUMN inactive_color TEXT DEFAULT '#f5f5f5';
            ALTER TABLE config_data ADD COLUMN show_progress BOOLEAN DEFAULT 1;
        """)
        db.commit()

# -------------------------------
# CONFIG
# -------------------------------
def get_config(db: sqlite3.Connection) -> Config:
    row = db.execute("""
        SELECT preferred_player,
               refresh_interval,
               allow_video_players,
               online_lyrics,
               lrclib_instance,
               lyric_location,
               active_color,
               inactive_color,
               show_progress
        FROM config_data
        LIMIT 1
    """).fetchone()
    return Config.from_row(row)


def set_config(db: sqlite3.Connection, config: Config):
    db.execute("""
        UPDATE config_data
        SET preferred_player = ?,
            refresh_interval = ?,
            allow_video_players = ?,
            online_lyrics = ?,
            lrclib_instance = ?,
            lyric_location = ?,
            active_color = ?,
            inactive_color = ?,
            show_progress = ?
        WHERE 1
    """, (
        config.preferred_player,
        config.refresh_interval,
        config.allow_video_players,
        config.online_lyrics,
        config.lrclib_instance,
        config.lyric_location,
        config.active_color,
        config.inactive_color,
        config.show_progress,
    ))
    db.commit()

# -------------------------------
# LYRICS CACHE
# -------------------------------
def song_key(song) -> str:
    """Cache key: normalized "title artists album"."""
    return prepare_input(format_song(song, " ", " ", True))


def get_cached_lyric(db: sqlite3.Connection, key: str) -> Optional[CachedLyric]:
    row = db.execute(
        "SELECT song_key, lrc_lyrics, source, updated_at FROM lyrics_cache WHERE song_key = ?",
        (key,)
    ).fetchone()
    return CachedLyric.from_row(row) if row else None


def put_cached_lyric(db: sqlite3.Connection, key: str, lrc_lyrics: str, source: str) -> None:
    db.execute("""
        INSERT INTO lyrics_cache (song_key, lrc_lyrics, source, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(song_key) DO UPDATE SET
            lrc_lyrics = excluded.lrc_lyrics,
            source = excluded.source,
            updated_at = excluded.updated_at
    """, (key, lrc_lyrics, source, int(time.time())))
    db.commit()


def delete_cached_lyric(db: sqlite3.Connection, key: str) -> None:
    db.execute("DELETE FROM lyrics_cache WHERE song_key = ?", (key,))
    db.commit()
