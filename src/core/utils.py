import re
import unicodedata

MPRIS_PREFIX = "org.mpris.MediaPlayer2."

def lower_lay_string(s: str) -> str:
    """Normalize the string and drop accents."""
    normalized = unicodedata.normalize('NFKD', s)
    return ''.join(c for c in normalized if not unicodedata.combining(c))


def collapse(s: str) -> str:
    return re.sub(r'\s+', ' ', s).strip()


def prepare_input(input_str: str) -> str:
    """Loose form of a title/artist used when comparing search results."""
    prepared_input = lower_lay_string(input_str)
    prepared_input = re.sub(r"[`~!@#$%^&*()_|+\-=?;:\",.<>{}\[\]\\\/]", " ", prepared_input)
    prepared_input = re.sub(r"[’']", "", prepared_input)
    prepared_input = prepared_input.lower()
    return collapse(prepared_input)


def strip_timestamps(lrc: str) -> str:
    """Remove leading [..] blocks from every line to get plain lyrics."""
    out_lines: list[str] = []
    for line in lrc.splitlines():
        line = line.strip()
        while line.startswith("[") and "]" in line:
            line = line.split("]", 1)[1].lstrip()
        if line:
            out_lines.append(line)
    return "\n".join(out_lines).strip()


def format_song(song, sep_title: str = " ", sep_artist: str = " ", use_album: bool = False) -> str:
    """
    "Title Artist1 Artist2" style descriptor used for searches and file names.
    Empty parts are skipped.
    """
    parts = [song.title, sep_artist.join(song.artists), song.album if use_album else ""]
    return sep_title.join(p for p in parts if p)


def lrc_file_name(song) -> str:
    # Title-Artist1,Artist2-Album.lrc ; "/" is not allowed in file names
    return format_song(song, "-", ",", True).replace("/", "／") + ".lrc"


def is_mpris_name(name: str) -> bool:
    return bool(name) and name.startswith(MPRIS_PREFIX)


def player_short_name(name: str) -> str:
    """First segment after the MPRIS prefix: org.mpris.MediaPlayer2.vlc.instance7 -> vlc"""
    if not is_mpris_name(name):
        return ""
    return name[len(MPRIS_PREFIX):].split(".", 1)[0]


def format_player_name(name: str) -> str:
    """
    Human readable player name from a bus name.
      org.mpris.MediaPlayer2.chromium.instance123 -> chromium
      org.mpris.MediaPlayer2.io.bassi.Amberol     -> Amberol
    """
    if not is_mpris_name(name):
        return name

    app_part = re.sub(r"\.instance\d+$", "", name[len(MPRIS_PREFIX):])
    return app_part.split(".")[-1]
