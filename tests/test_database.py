import sqlite3

import pytest

from core.models import SelectionPreference, SongInfo
from core.state import AppState
from db.database import (
    CURRENT_DB_VERSION,
    delete_cached_lyric,
    get_cached_lyric,
    get_config,
    initialize_database,
    open_database,
    put_cached_lyric,
    song_key,
)
from db.models import Config


@pytest.fixture
def db(tmp_path):
    conn = initialize_database(str(tmp_path))
    yield conn
    conn.close()


def test_fresh_database_is_current(db):
    assert db.execute("PRAGMA user_version").fetchone()[0] == CURRENT_DB_VERSION
    assert get_config(db) == Config()


def test_upgrade_from_version_one(tmp_path):
    path = str(tmp_path / "old.sqlite3")
    old = sqlite3.connect(path)
    old.executescript("""
        PRAGMA user_version=1;
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
        INSERT INTO config_data (preferred_player, refresh_interval) VALUES ('none', 120);
        INSERT INTO lyrics_cache (song_key, lrc_lyrics, updated_at) VALUES ('k', '[00:01.00]x', 1);
    """)
    old.commit()
    old.close()

    db = open_database(path)
    config = get_config(db)
    assert config.preferred_player == "none"
    assert config.refresh_interval == 120
    assert config.allow_video_players is True
    assert config.show_progress is True
    assert get_cached_lyric(db, "k").source == "lrclib"
    db.close()


def test_config_persists_through_app_state(db):
    state = AppState(db)
    changed = []
    state.preferenceChanged.connect(changed.append)

    state.set_preference(SelectionPreference.pinned("org.mpris.MediaPlayer2.vlc"))
    state.update_config(active_color="#ff0000", show_progress=False)

    assert changed == [SelectionPreference.pinned("org.mpris.MediaPlayer2.vlc")]
    stored = get_config(db)
    assert stored.preferred_player == "org.mpris.MediaPlayer2.vlc"
    assert stored.active_color == "#ff0000"
    assert stored.show_progress is False


def test_unchanged_config_emits_nothing(db):
    state = AppState(db)
    events = []
    state.configChanged.connect(events.append)
    state.set_refresh_interval(state.config.refresh_interval)
    assert events == []


def test_cache_round_trip(db):
    song = SongInfo(title="Héllo, World!", artists=("A", "B"), album="Alb")
    key = song_key(song)
    assert key == "hello world a b alb"

    assert get_cached_lyric(db, key) is None
    put_cached_lyric(db, key, "[00:01.00]one", "lrclib-get")
    put_cached_lyric(db, key, "[00:01.00]two", "lrclib-search")

    cached = get_cached_lyric(db, key)
    assert cached.lrc_lyrics == "[00:01.00]two"
    assert cached.source == "lrclib-search"

    delete_cached_lyric(db, key)
    assert get_cached_lyric(db, key) is None
