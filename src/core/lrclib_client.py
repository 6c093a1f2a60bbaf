from __future__ import annotations

from typing import Optional
import requests

from core.models import LyricsResult, SongInfo
from core.utils import prepare_input

INSTRUMENTAL_MARK = "[au: instrumental]"


class LrcLibClient:
    def __init__(self, base_url: str = "https://lrclib.net", user_agent: str = "desklyric/0.1", timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def get_by_metadata(self, title: str, artist: str, album: str | None, duration_s: float | None) -> Optional[dict]:
        # GET /api/get?track_name=&artist_name=&album_name=&duration=
        params = {
            "track_name": title,
            "artist_name": artist,
        }
        if album:
            params["album_name"] = album
        if duration_s and duration_s > 0:
            params["duration"] = int(round(duration_s))

        r = self.session.get(f"{self.base_url}/api/get", params=params, timeout=self.timeout)
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return r.json()

    def search(self, query: str, artist: str | None = None, duration_s: float | None = None, limit: int = 10) -> list[dict]:
        # GET /api/search?q=...&artist_name=...
        params = {"q": query}
        if artist:
            params["artist_name"] = artist
        r = self.session.get(f"{self.base_url}/api/search", params=params, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, list):
            return []
        if duration_s and duration_s > 0:
            # LRCLIB matches within a couple of seconds
            data.sort(key=lambda x: abs(float(x.get("duration") or 0) - duration_s))
        return data[: int(limit)]

    @staticmethod
    def _result(data: dict, source: str) -> LyricsResult:
        plain = (data.get("plainLyrics") or "").strip() or None
        synced = (data.get("syncedLyrics") or "").strip() or None
        instrumental = bool(data.get("instrumental", False)) or (synced == INSTRUMENTAL_MARK)
        return LyricsResult(plain=plain, synced=synced, instrumental=instrumental, source=source)

    @staticmethod
    def _matches(song: SongInfo, item: dict) -> bool:
        title = prepare_input(song.title)
        if title and prepare_input(str(item.get("trackName") or "")) != title:
            return False
        if song.album and prepare_input(str(item.get("albumName") or "")) != prepare_input(song.album):
            return False
        return True

    def fetch_best(self, song: SongInfo, fallback: bool = True) -> LyricsResult:
        artist = ", ".join(song.artists)
        duration_s = song.length_ms / 1000.0 if song.length_ms else None

        # 1) /api/get (best match by metadata)
        data = self.get_by_metadata(title=song.title, artist=artist, album=song.album or None, duration_s=duration_s)
        if data:
            return self._result(data, "get")

        # 2) /api/search, exact title/album first, then the top hit when allowed
        items = self.search(query=f"{artist} {song.title}".strip(), artist=artist or None, duration_s=duration_s)
        best = next((x for x in items if self._matches(song, x)), None)
        if best is None and fallback and items:
            best = items[0]
        if best is not None:
            return self._result(best, "search")

        return LyricsResult(plain=None, synced=None, instrumental=False, source="none")
