# player/lyric_sync.py
from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Signal

from core.models import EMPTY_LINE, LyricLine, PlaybackStatus, SelectionPreference, SongInfo
from core.timeline import Timeline
from player.estimator import PositionEstimator
from player.selector import (
    is_auto_mode,
    player_rank,
    select_player,
    should_activate_new_player,
    should_auto_switch,
)

logger = logging.getLogger(__name__)


class SyncState(Enum):
    NO_PLAYER = auto()
    ACTIVE = auto()
    SUPPRESSED = auto()


def song_from_metadata(metadata: Any) -> Optional[SongInfo]:
    """
    SongInfo from an MPRIS Metadata dict. A missing or ill-typed title means
    there is no song; other ill-typed fields fall back to empty values.
    """
    if not isinstance(metadata, dict):
        return None

    title = metadata.get("xesam:title")
    if not isinstance(title, str) or not title:
        return None

    artists = metadata.get("xesam:artist")
    if not isinstance(artists, (list, tuple)) or not all(isinstance(a, str) for a in artists):
        artists = []
    artists = tuple(part for a in artists for part in a.split("/") if part)

    album = metadata.get("xesam:album")
    lyric = metadata.get("xesam:asText")
    url = metadata.get("xesam:url")

    length = metadata.get("mpris:length")
    try:
        length_ms = max(0, int(length) // 1000) if length is not None else 0
    except (TypeError, ValueError):
        length_ms = 0

    return SongInfo(
        title=title,
        artists=artists,
        album=album if isinstance(album, str) else "",
        length_ms=length_ms,
        lyric=lyric if isinstance(lyric, str) else None,
        url=url if isinstance(url, str) else None,
    )


class LyricSync(QObject):
    """
    Follows the chosen player and turns its position into {text, fraction}.

    Collaborators:
      registry        PlayerRegistry
      state           AppState (config snapshot + change signals)
      loader          object with load(song, reload, callback(song, text|None))
      source_factory  bus name -> position source
    """
    lineChanged = Signal(str, float)        # text, fraction
    playingChanged = Signal(bool)
    visibleChanged = Signal(bool)
    songChanged = Signal(object)            # SongInfo | None
    activePlayerChanged = Signal(object)    # bus name | None

    def __init__(
        self,
        registry,
        state,
        loader,
        source_factory: Callable[[str], Any],
        estimator_factory: Optional[Callable[..., PositionEstimator]] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.registry = registry
        self.state = state
        self.loader = loader
        self.source_factory = source_factory
        self.estimator_factory = estimator_factory or PositionEstimator

        self.sync_state = SyncState.NO_PLAYER
        self._active: Optional[str] = None
        self._estimator: Optional[PositionEstimator] = None
        self._song: Optional[SongInfo] = None
        self._timeline = Timeline()
        self._playing = False
        self._load_generation = 0
        self._last_line: Optional[LyricLine] = None

        self._connections: list[tuple[Any, Callable]] = []
        self._started = False

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def _connect(self, signal, slot) -> None:
        signal.connect(slot)
        self._connections.append((signal, slot))

    def start(self) -> None:
        if self._started:
            return
        self._started = True

        self._connect(self.registry.playerAdded, self._on_player_added)
        self._connect(self.registry.playerRemoved, self._on_player_removed)
        self._connect(self.registry.statusChanged, self._on_status_changed)
        self._connect(self.registry.metadataChanged, self._on_metadata_changed)
        self._connect(self.registry.seeked, self._on_seeked)
        self._connect(self.registry.scanFinished, self._on_scan_finished)
        self._connect(self.state.preferenceChanged, self._on_preference_changed)
        self._connect(self.state.refreshIntervalChanged, self._on_refresh_interval_changed)
        self._connect(self.state.configChanged, self._on_config_changed)

        if self.state.preference().is_none:
            self.sync_state = SyncState.SUPPRESSED
        self.registry.scan()

    def close(self) -> None:
        while self._connections:
            signal, slot = self._connections.pop()
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                pass
        self._release_player()
        self._active = None
        self.sync_state = SyncState.NO_PLAYER
        self._started = False

    # ----------------------------
    # Read side
    # ----------------------------

    @property
    def active_player(self) -> Optional[str]:
        return self._active

    @property
    def song(self) -> Optional[SongInfo]:
        return self._song

    @property
    def timeline(self) -> Timeline:
        return self._timeline

    @property
    def estimator(self) -> Optional[PositionEstimator]:
        return self._estimator

    @property
    def playing(self) -> bool:
        return self._playing

    def current_line(self) -> LyricLine:
        if self._estimator is None:
            return EMPTY_LINE
        return self._timeline.lookup(self._estimator.estimate_now())

    # ----------------------------
    # Inputs
    # ----------------------------

    def track_changed(self, song: Optional[SongInfo]) -> None:
        if song is None or self._estimator is None:
            return

        if song.same_song(self._song):
            # same track, the player only corrected its length
            self._song = song
            self._timeline = self._timeline.with_duration(song.length_ms)
            self._estimator.correct_drift(song.length_ms)
            return

        self._song = song
        self.songChanged.emit(song)
        self._load_lyric(reload=False)

    def seeked(self, position_ms: int) -> None:
        if self._estimator is None:
            return
        self._estimator.resync(max(0, int(position_ms)))
        self._emit_line(self._estimator.estimate_now())

    def status_changed(self, status: PlaybackStatus) -> None:
        if self._estimator is None:
            return

        playing = status == PlaybackStatus.PLAYING
        if playing:
            self._estimator.start_ticking()
            self._estimator.request_resync()
        else:
            # stops the tick and any retry loop, then reads where it stopped
            self._estimator.cancel()
            self._estimator.request_resync()

        if playing != self._playing:
            self._playing = playing
            self.playingChanged.emit(playing)

    def set_refresh_interval(self, ms: int) -> None:
        self.state.set_refresh_interval(ms)

    def set_preference(self, preference: SelectionPreference) -> None:
        self.state.set_preference(preference)

    def resynchronize(self) -> None:
        if self._estimator is not None:
            self._estimator.correct_drift(self._song.length_ms if self._song else 0)

    def reload_lyric(self) -> None:
        self._load_lyric(reload=True)

    # ----------------------------
    # Player selection
    # ----------------------------

    def _on_scan_finished(self) -> None:
        self._reselect()

    def _on_preference_changed(self, preference: SelectionPreference) -> None:
        logger.info("Preferred player: %s", preference.to_setting() or "auto")
        self._reselect(force=True)

    def _reselect(self, force: bool = False) -> None:
        preference = self.state.preference()
        if preference.is_none:
            self._deactivate(SyncState.SUPPRESSED)
            return

        snapshot = self.registry.snapshot()
        chosen = select_player(snapshot, preference)
        current = self._active

        if chosen == current:
            if current is None and self.sync_state == SyncState.SUPPRESSED:
                self.sync_state = SyncState.NO_PLAYER
            return

        if chosen is None:
            self._deactivate(SyncState.NO_PLAYER)
            return

        if (
            not force
            and current in snapshot
            and is_auto_mode(preference, snapshot)
            and not should_auto_switch(current, snapshot)
            and player_rank(snapshot[chosen]) <= player_rank(snapshot[current])
        ):
            return

        self._activate(chosen)

    def _on_player_added(self, name: str) -> None:
        preference = self.state.preference()
        if preference.is_none:
            return

        snapshot = self.registry.snapshot()
        if should_activate_new_player(
            name, snapshot.get(name), self._active, preference, self._active is not None, snapshot
        ):
            self._activate(name)

    def _on_player_removed(self, name: str) -> None:
        if name != self._active:
            return
        self._deactivate(SyncState.NO_PLAYER)
        self._reselect()

    def _on_status_changed(self, name: str, status: PlaybackStatus) -> None:
        if name == self._active:
            self.status_changed(status)

        preference = self.state.preference()
        if not preference.is_none and is_auto_mode(preference, self.registry.snapshot()):
            self._reselect()

    def _on_metadata_changed(self, name: str, metadata: dict) -> None:
        if name == self._active:
            self.track_changed(song_from_metadata(metadata))

    def _on_seeked(self, name: str, position_ms: int) -> None:
        if name == self._active:
            self.seeked(position_ms)

    def _activate(self, name: str) -> None:
        if name == self._active:
            return

        self._release_player()
        self._active = name
        self.sync_state = SyncState.ACTIVE
        logger.info("Following player %s", name)

        estimator = self.estimator_factory(
            source=self.source_factory(name),
            refresh_interval_ms=self.state.config.refresh_interval,
        )
        estimator.ticked.connect(self._emit_line)
        estimator.corrected.connect(self._emit_line)
        self._estimator = estimator

        self.activePlayerChanged.emit(name)
        self.visibleChanged.emit(True)

        record = self.registry.get(name)
        self.status_changed(record.playback_status if record else PlaybackStatus.STOPPED)

        def on_metadata(metadata: Optional[dict]) -> None:
            # the player may have been replaced while the read was in flight
            if self._active != name or self._estimator is not estimator:
                return
            self.track_changed(song_from_metadata(metadata))

        self.registry.fetch_metadata(name, on_metadata)

    def _deactivate(self, new_state: SyncState) -> None:
        had_player = self._active is not None
        self._release_player()
        self._active = None
        self.sync_state = new_state
        if had_player:
            logger.info("No player followed (%s)", new_state.name.lower())
            self.activePlayerChanged.emit(None)
            self.visibleChanged.emit(False)

    def _release_player(self) -> None:
        self._load_generation += 1
        if self._estimator is not None:
            self._estimator.ticked.disconnect(self._emit_line)
            self._estimator.corrected.disconnect(self._emit_line)
            self._estimator.dispose()
            self._estimator = None

        if self._song is not None:
            self._song = None
            self.songChanged.emit(None)
        self._timeline = Timeline()
        self._last_line = None
        self.lineChanged.emit("", 0.0)

        if self._playing:
            self._playing = False
            self.playingChanged.emit(False)

    # ----------------------------
    # Lyrics
    # ----------------------------

    def _load_lyric(self, reload: bool) -> None:
        song = self._song
        if song is None:
            return

        self._load_generation += 1
        generation = self._load_generation

        if song.lyric is not None and not reload:
            self._set_lyric(song.lyric)
            return

        self._set_lyric("")

        def done(loaded_song: SongInfo, text: Optional[str]) -> None:
            if generation != self._load_generation or not loaded_song.same_song(self._song):
                return
            if not text and reload:
                self.state.notify(f"No lyrics found for {loaded_song.title}", "warn")
            self._set_lyric(text or "")

        self.loader.load(song, reload, done)

    def _set_lyric(self, text: str) -> None:
        song = self._song
        self._timeline = Timeline.parse(text, song.length_ms if song else None)
        self._last_line = None
        if self._estimator is not None:
            self._estimator.correct_drift(song.length_ms if song else 0)
            self._emit_line(self._estimator.estimate_now())

    def _emit_line(self, position_ms: int) -> None:
        line = self._timeline.lookup(position_ms)
        if line == self._last_line:
            return
        self._last_line = line
        self.lineChanged.emit(line.text, line.fraction)

    # ----------------------------
    # Settings
    # ----------------------------

    def _on_refresh_interval_changed(self, ms: int) -> None:
        if self._estimator is not None:
            self._estimator.set_refresh_interval(ms)

    def _on_config_changed(self, config) -> None:
        if config.allow_video_players != self.registry.allow_video_players:
            self.registry.set_allow_video_players(config.allow_video_players)
