# core/local_lyrics.py
from __future__ import annotations

import logging
import os
from typing import Optional
from urllib.parse import unquote, urlparse

from mutagen import File as MutagenFile
from mutagen.id3 import ID3, ID3NoHeaderError
from mutagen.flac import FLAC
from mutagen.oggvorbis import OggVorbis
from mutagen.oggopus import OggOpus
from mutagen.mp4 import MP4
from mutagen._util import MutagenError

from core.models import SongInfo
from core.utils import lrc_file_name

logger = logging.getLogger(__name__)

# Convention used by lyric taggers:
#   - Synced LRC goes into:   LYRICS
#   - Unsynced (plain) goes into: UNSYNCEDLYRICS
VORBIS_SYNCED_KEY = "LYRICS"
ID3_SYNCED_DESC = "LYRICS"
MP4_PLAIN_KEY = "\xa9lyr"
MP4_SYNCED_KEY = "----:com.lrclib:LYRICS"


def _norm(s: Optional[str]) -> Optional[str]:
    """Normalize optional strings (strip + convert empty to None)."""
    if not s:
        return None
    s = str(s).strip()
    return s or None


def _read_text(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            return _norm(fh.read())
    except OSError as e:
        logger.debug("Failed to read %s: %s", path, e)
        return None


def local_path_from_url(url: Optional[str]) -> Optional[str]:
    """xesam:url -> filesystem path, only for file:// URLs."""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme != "file":
        return None
    return unquote(parsed.path) or None


def read_lyric_location(location: str, song: SongInfo) -> Optional[str]:
    """User lyric folder: <location>/Title-Artist1,Artist2-Album.lrc"""
    if not location or not song.title:
        return None
    path = os.path.join(os.path.expanduser(location), lrc_file_name(song))
    if not os.path.isfile(path):
        return None
    return _read_text(path)


def read_sidecar_lrc(audio_path: str) -> Optional[str]:
    base, _ = os.path.splitext(audio_path)
    lrc_path = base + ".lrc"
    if not os.path.isfile(lrc_path):
        return None
    return _read_text(lrc_path)


def _first(value) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return None if value is None else str(value)


def read_embedded_synced_lyrics(path: str) -> Optional[str]:
    """
    Synced LRC embedded in an audio file, if any:
      - .mp3            -> ID3 TXXX:LYRICS, then USLT
      - .flac/.ogg/.opus -> Vorbis comment LYRICS
      - .m4a/.mp4       -> custom atom, then ©lyr
    """
    ext = os.path.splitext(path)[1].lower()
    synced: Optional[str] = None

    try:
        if ext == ".mp3":
            try:
                tags = ID3(path)
            except ID3NoHeaderError:
                return None
            for frame in tags.getall("TXXX"):
                if getattr(frame, "desc", "") == ID3_SYNCED_DESC:
                    synced = _first(getattr(frame, "text", None))
                    break
            if synced is None:
                for frame in tags.getall("USLT"):
                    synced = _first(getattr(frame, "text", None))
                    if synced:
                        break

        elif ext in {".flac", ".ogg", ".oga", ".opus"}:
            audio_cls = {".flac": FLAC, ".opus": OggOpus}.get(ext, OggVorbis)
            audio = audio_cls(path)
            synced = _first(audio.get(VORBIS_SYNCED_KEY))

        elif ext in {".m4a", ".mp4"}:
            audio = MP4(path)
            synced = _first(audio.get(MP4_SYNCED_KEY)) or _first(audio.get(MP4_PLAIN_KEY))

        else:
            audio = MutagenFile(path, easy=True)
            if audio is not None:
                synced = _first(audio.get("lyrics"))
    except (MutagenError, OSError) as e:
        logger.debug("Failed to read embedded lyrics from %s: %s", path, e)
        return None

    return _norm(synced)
