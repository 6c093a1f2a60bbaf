import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QObject, Signal

from core.state import AppState
from db.models import Config
from player.mpris_bus import PLAYER_IFACE

MPRIS = "org.mpris.MediaPlayer2."


class FakeHandle:
    def __init__(self, bus, kind, name, handler):
        self.bus = bus
        self.kind = kind
        self.name = name
        self.handler = handler
        self.closed = False

    def close(self):
        self.closed = True
        self.bus.closed.append(self)


class FakeBus(QObject):
    """
    In-memory stand-in for MprisBus. Replies are delivered right away unless
    auto_reply is off, in which case they queue up until flush().
    """
    nameOwnerChanged = Signal(str, str, str)

    def __init__(self):
        super().__init__()
        self.names: list[str] = []
        self.categories: dict[str, list | None] = {}
        self.properties: dict[tuple[str, str], object] = {}
        self.auto_reply = True
        self.pending: list[tuple] = []
        self.watches: list[FakeHandle] = []
        self.closed: list[FakeHandle] = []
        self.calls: list[tuple] = []

    def _reply(self, callback, value):
        if self.auto_reply:
            callback(value)
        else:
            self.pending.append((callback, value))

    def flush(self):
        while self.pending:
            callback, value = self.pending.pop(0)
            callback(value)

    def flush_one(self):
        callback, value = self.pending.pop(0)
        callback(value)

    # ---- MprisBus surface ----

    def list_names(self, callback):
        self.calls.append(("ListNames",))
        self._reply(callback, list(self.names))

    def get_property(self, name, iface, prop, callback):
        self.calls.append(("Get", name, prop))
        self._reply(callback, self.properties.get((name, prop)))

    def get_application_categories(self, name, callback):
        self.calls.append(("Categories", name))
        self._reply(callback, self.categories.get(name))

    def watch_properties(self, name, handler):
        h = FakeHandle(self, "properties", name, handler)
        self.watches.append(h)
        return h

    def watch_seeked(self, name, handler):
        h = FakeHandle(self, "seeked", name, handler)
        self.watches.append(h)
        return h

    # ---- test helpers ----

    def add_player(self, short, status="Playing", categories=None, metadata=None, position_us=0):
        name = MPRIS + short
        self.names.append(name)
        self.categories[name] = categories
        if status is not None:
            self.properties[(name, "PlaybackStatus")] = status
        if metadata is not None:
            self.properties[(name, "Metadata")] = metadata
        self.properties[(name, "Position")] = position_us
        return name

    def drop_player(self, name):
        if name in self.names:
            self.names.remove(name)
        for key in [k for k in self.properties if k[0] == name]:
            del self.properties[key]

    def appear(self, name):
        self.nameOwnerChanged.emit(name, "", ":1.42")

    def vanish(self, name):
        self.drop_player(name)
        self.nameOwnerChanged.emit(name, ":1.42", "")

    def emit_properties(self, name, changed, iface=PLAYER_IFACE):
        for h in list(self.watches):
            if h.kind == "properties" and h.name == name and not h.closed:
                h.handler(iface, changed)

    def emit_seeked(self, name, position_us):
        for h in list(self.watches):
            if h.kind == "seeked" and h.name == name and not h.closed:
                h.handler(position_us)

    def open_watches(self, name=None):
        return [h for h in self.watches if not h.closed and (name is None or h.name == name)]


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedSource:
    """
    Position source replaying a script of values (ms, or None for a failed
    read). With auto=False replies wait for reply().
    """

    def __init__(self, values=(), auto=True, default=None):
        self.values = list(values)
        self.auto = auto
        self.default = default
        self.requests = 0
        self.pending = []

    def request_position(self, callback):
        self.requests += 1
        if self.auto:
            callback(self.values.pop(0) if self.values else self.default)
        else:
            self.pending.append(callback)

    def reply(self, value):
        self.pending.pop(0)(value)


class FakeLoader:
    def __init__(self, lyrics=None, auto=True):
        self.lyrics = lyrics or {}
        self.auto = auto
        self.requests = []

    def load(self, song, reload, callback):
        self.requests.append((song, reload, callback))
        if self.auto:
            callback(song, self.lyrics.get(song.title))

    def finish(self, index=-1, text=None):
        song, _reload, callback = self.requests[index]
        callback(song, text if text is not None else self.lyrics.get(song.title))


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app_state():
    return AppState(config=Config())
