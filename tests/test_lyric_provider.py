import pytest
import requests

from core.lrclib_client import LrcLibClient
from core.lyric_provider import LyricNotFound, LyricProvider
from core.models import SongInfo
from core.utils import lrc_file_name
from db.database import get_cached_lyric, initialize_database, put_cached_lyric, song_key
from db.models import Config

SONG = SongInfo(title="Song", artists=("Artist",), album="Album", length_ms=200000)
SYNCED = "[00:01.00]hello\n[00:02.00]world"


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data

    def json(self):
        return self._data

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def lrclib(monkeypatch):
    """Routes Session.get by endpoint; tests fill in the replies."""
    routes = {"get": FakeResponse(404), "search": FakeResponse(200, [])}
    calls = []

    def fake_get(self, url, params=None, timeout=None):
        endpoint = url.rsplit("/", 1)[-1]
        calls.append((endpoint, params))
        reply = routes[endpoint]
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(requests.Session, "get", fake_get)
    return routes, calls


@pytest.fixture
def db(tmp_path):
    conn = initialize_database(str(tmp_path / "data"))
    yield conn
    conn.close()


def provider(db, **config):
    return LyricProvider(db, Config(**config))


def test_cache_hit_skips_network(db, lrclib):
    _routes, calls = lrclib
    put_cached_lyric(db, song_key(SONG), SYNCED, "lrclib-get")
    assert provider(db).find(SONG) == SYNCED
    assert calls == []


def test_lyric_location_file(db, lrclib, tmp_path):
    folder = tmp_path / "lyrics"
    folder.mkdir()
    (folder / lrc_file_name(SONG)).write_text("[00:00.00]from folder\n", encoding="utf-8")

    assert provider(db, lyric_location=str(folder)).find(SONG) == "[00:00.00]from folder"
    assert lrclib[1] == []


def test_sidecar_lrc_next_to_local_track(db, lrclib, tmp_path):
    track = tmp_path / "music" / "song.flac"
    track.parent.mkdir()
    track.write_bytes(b"")
    (tmp_path / "music" / "song.lrc").write_text("[00:00.00]sidecar", encoding="utf-8")

    song = SongInfo(title="Song", url=track.as_uri())
    assert provider(db).find(song) == "[00:00.00]sidecar"


def test_lrclib_get_is_cached(db, lrclib):
    routes, calls = lrclib
    routes["get"] = FakeResponse(200, {"syncedLyrics": SYNCED, "plainLyrics": "hello\nworld"})

    assert provider(db).find(SONG) == SYNCED
    assert calls[0] == ("get", {
        "track_name": "Song",
        "artist_name": "Artist",
        "album_name": "Album",
        "duration": 200,
    })
    cached = get_cached_lyric(db, song_key(SONG))
    assert cached.lrc_lyrics == SYNCED
    assert cached.source == "lrclib-get"


def test_search_prefers_exact_title(db, lrclib):
    routes, _calls = lrclib
    routes["search"] = FakeResponse(200, [
        {"trackName": "Song (Live)", "albumName": "Album", "duration": 200, "syncedLyrics": "[00:00.00]live"},
        {"trackName": "song", "albumName": "album", "duration": 230, "syncedLyrics": "[00:00.00]studio"},
    ])
    assert provider(db).find(SONG) == "[00:00.00]studio"
    assert get_cached_lyric(db, song_key(SONG)).source == "lrclib-search"


def test_instrumental_is_not_found(db, lrclib):
    routes, _calls = lrclib
    routes["get"] = FakeResponse(200, {"syncedLyrics": "[au: instrumental]", "instrumental": True})
    with pytest.raises(LyricNotFound):
        provider(db).find(SONG)


def test_offline_mode_never_hits_network(db, lrclib):
    with pytest.raises(LyricNotFound):
        provider(db, online_lyrics=False).find(SONG)
    assert lrclib[1] == []


def test_network_errors_propagate(db, lrclib):
    routes, _calls = lrclib
    routes["get"] = FakeResponse(500)
    with pytest.raises(requests.HTTPError):
        provider(db).find(SONG)


def test_reload_bypasses_cache_and_drops_bad_entry(db, lrclib):
    routes, calls = lrclib
    key = song_key(SONG)
    put_cached_lyric(db, key, "[00:00.00]wrong song", "lrclib-search")

    with pytest.raises(LyricNotFound):
        provider(db).find(SONG, reload=True)
    assert calls
    assert get_cached_lyric(db, key) is None


def test_offline_reload_drops_cached_entry(db, lrclib):
    _routes, calls = lrclib
    key = song_key(SONG)
    put_cached_lyric(db, key, "[00:00.00]wrong song", "lrclib-search")

    with pytest.raises(LyricNotFound):
        provider(db, online_lyrics=False).find(SONG, reload=True)
    assert calls == []
    assert get_cached_lyric(db, key) is None


def test_search_sorts_by_duration(lrclib):
    routes, _calls = lrclib
    routes["search"] = FakeResponse(200, [
        {"trackName": "a", "duration": 100},
        {"trackName": "b", "duration": 199},
        {"trackName": "c", "duration": 260},
    ])
    items = LrcLibClient().search("Song", duration_s=200)
    assert [x["trackName"] for x in items] == ["b", "c", "a"]
