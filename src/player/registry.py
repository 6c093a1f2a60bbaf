# player/registry.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, Signal

from core.models import PlaybackStatus, PlayerRecord, VerifyResult
from core.utils import is_mpris_name, player_short_name
from player.mpris_bus import PLAYER_IFACE

logger = logging.getLogger(__name__)

# known music players that some distros file under video
MUSIC_PLAYERS = ("splayer", "yesplaymusic")
BROWSERS = ("chromium", "chrome", "firefox", "edge", "brave", "opera", "vivaldi", "epiphany")


def is_video_player(categories: Optional[list[str]], player_name: str = "") -> bool:
    """
    Video <=> the application's categories contain "Video" but not the hybrid
    "AudioVideo" marker. Without category metadata, browsers count as video.
    """
    lower_name = (player_name or "").lower()
    if any(m in lower_name for m in MUSIC_PLAYERS):
        return False

    if categories is None:
        return any(b in lower_name for b in BROWSERS)

    return "Video" in categories and "AudioVideo" not in categories


def extract_title(metadata: Any) -> Optional[str]:
    """xesam:title when it is a non-empty string; anything else means no title."""
    if not isinstance(metadata, dict):
        return None
    title = metadata.get("xesam:title")
    if isinstance(title, str) and title.strip():
        return title
    return None


def has_active_track(metadata: Any) -> bool:
    if not isinstance(metadata, dict):
        return False
    track_id = metadata.get("mpris:trackid")
    # Chromium reports ".../TrackList/NoTrack" once a tab stops playing
    if isinstance(track_id, str) and "NoTrack" in track_id:
        return False
    return extract_title(metadata) is not None


class PlayerRegistry(QObject):
    """
    Live set of MPRIS players on the bus.

    The bus object must provide:
      - nameOwnerChanged signal (name, old_owner, new_owner)
      - list_names(cb), get_property(name, iface, prop, cb),
        get_application_categories(name, cb)    ; cb(None) on failure
      - watch_properties(name, handler), watch_seeked(name, handler)
        returning handles with close()
    """
    playerAdded = Signal(str)
    playerRemoved = Signal(str)
    statusChanged = Signal(str, object)     # name, PlaybackStatus
    metadataChanged = Signal(str, object)   # name, metadata dict
    seeked = Signal(str, int)               # name, position ms
    scanFinished = Signal()

    def __init__(self, bus, allow_video_players: bool = True, parent=None):
        super().__init__(parent)
        self.bus = bus
        self.allow_video_players = allow_video_players

        self._records: dict[str, PlayerRecord] = {}
        self._handles: dict[str, list] = {}
        self._pending: dict[str, object] = {}
        self._scanning = False

        self.bus.nameOwnerChanged.connect(self.on_name_owner_changed)

    # ----------------------------
    # Read side
    # ----------------------------

    def snapshot(self) -> dict[str, PlayerRecord]:
        """Copy of the registry in discovery order."""
        return {name: replace(rec) for name, rec in self._records.items()}

    def get(self, name: Optional[str]) -> Optional[PlayerRecord]:
        rec = self._records.get(name) if name else None
        return replace(rec) if rec else None

    def names(self) -> list[str]:
        return list(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    # ----------------------------
    # Discovery
    # ----------------------------

    def scan(self) -> None:
        """Enumerate the bus and discover every player not yet known."""
        if self._scanning:
            return
        self._scanning = True
        self.bus.list_names(self._on_names)

    def _on_names(self, names: Optional[list[str]]) -> None:
        candidates = [n for n in (names or []) if is_mpris_name(n)]
        remaining = {"count": len(candidates)}

        def done() -> None:
            remaining["count"] -= 1
            if remaining["count"] == 0:
                self._finish_scan()

        if not candidates:
            self._finish_scan()
            return

        for name in candidates:
            self.on_discovered(name, done)

    def _finish_scan(self) -> None:
        self._scanning = False
        self.scanFinished.emit()

    def on_name_owner_changed(self, name: str, old_owner: str, new_owner: str) -> None:
        if not is_mpris_name(name):
            return
        if old_owner:
            self.on_removed(name)
        if new_owner:
            self.on_discovered(name)

    def on_discovered(self, name: str, done: Optional[Callable[[], None]] = None) -> None:
        finish = done or (lambda: None)

        if not is_mpris_name(name) or name in self._records or name in self._pending:
            finish()
            return

        token = object()
        self._pending[name] = token

        def on_categories(categories: Optional[list[str]]) -> None:
            if self._pending.get(name) is not token:
                finish()
                return

            is_video = is_video_player(categories, player_short_name(name))
            if is_video and not self.allow_video_players:
                logger.debug("Ignoring video player %s", name)
                self._pending.pop(name, None)
                finish()
                return

            # watch before reading so no change slips in between
            self._handles[name] = [
                self.bus.watch_properties(name, lambda iface, changed: self.on_property_changed(name, iface, changed)),
                self.bus.watch_seeked(name, lambda pos_us: self._on_seeked(name, pos_us)),
            ]
            self.bus.get_property(
                name, PLAYER_IFACE, "PlaybackStatus",
                lambda value: on_status(is_video, value),
            )

        def on_status(is_video: bool, value: Any) -> None:
            if self._pending.get(name) is not token:
                finish()
                return
            del self._pending[name]

            status = PlaybackStatus.parse(value) if value is not None else PlaybackStatus.STOPPED
            self._records[name] = PlayerRecord(id=name, is_video=is_video, playback_status=status)
            logger.info("Player added: %s (%s, %s)", name, "video" if is_video else "music", status.value)
            self.playerAdded.emit(name)
            finish()

        self.bus.get_application_categories(name, on_categories)

    def on_property_changed(self, name: str, iface: str, changed: dict) -> None:
        rec = self._records.get(name)
        if rec is None or iface != PLAYER_IFACE:
            return

        if "PlaybackStatus" in changed:
            rec.playback_status = PlaybackStatus.parse(changed["PlaybackStatus"])
            self.statusChanged.emit(name, rec.playback_status)

        if "Metadata" in changed:
            metadata = changed["Metadata"]
            rec.current_title = extract_title(metadata)
            self.metadataChanged.emit(name, metadata if isinstance(metadata, dict) else {})

    def _on_seeked(self, name: str, position_us: int) -> None:
        if name in self._records:
            self.seeked.emit(name, max(0, int(position_us) // 1000))

    def on_removed(self, name: str) -> None:
        if self._pending.pop(name, None) is not None:
            # discovery abandoned; its watches may already be open
            self._release(name)
            return
        if name not in self._records:
            return

        del self._records[name]
        self._release(name)
        logger.info("Player removed: %s", name)
        self.playerRemoved.emit(name)

    def _release(self, name: str) -> None:
        for handle in reversed(self._handles.pop(name, [])):
            handle.close()

    def set_allow_video_players(self, allow: bool) -> None:
        self.allow_video_players = bool(allow)
        if allow:
            self.scan()
            return
        for name in [n for n, rec in self._records.items() if rec.is_video]:
            self.on_removed(name)

    # ----------------------------
    # On-demand checks
    # ----------------------------

    def fetch_metadata(self, name: str, callback: Callable[[Optional[dict]], None]) -> None:
        def on_value(value: Any) -> None:
            callback(value if isinstance(value, dict) else None)

        self.bus.get_property(name, PLAYER_IFACE, "Metadata", on_value)

    def verify(self, name: str, callback: Callable[[VerifyResult], None]) -> None:
        """Liveness check: is the name still answering, and does it have a track?"""
        def on_value(value: Any) -> None:
            if value is None:
                callback(VerifyResult(connected=False, has_media=False))
                return
            callback(VerifyResult(connected=True, has_media=has_active_track(value)))

        self.bus.get_property(name, PLAYER_IFACE, "Metadata", on_value)

    def refresh_title(self, name: str, callback: Optional[Callable[[Optional[str]], None]] = None) -> None:
        def on_metadata(metadata: Optional[dict]) -> None:
            title = extract_title(metadata)
            rec = self._records.get(name)
            if rec is not None:
                rec.current_title = title
            if callback:
                callback(title)

        self.fetch_metadata(name, on_metadata)

    def verify_and_refresh(self, name: str, callback: Callable[[bool], None]) -> None:
        """
        Verify a player before listing it. Disconnected players are dropped;
        players without media stay registered but are not listed.
        """
        def on_verified(result: VerifyResult) -> None:
            if not result.connected:
                self.on_removed(name)
                callback(False)
                return

            rec = self._records.get(name)
            if rec is None:
                callback(False)
                return

            if not result.has_media:
                rec.current_title = None
                callback(False)
                return

            self.refresh_title(name, lambda title: callback(name in self._records))

        self.verify(name, on_verified)

    def close(self) -> None:
        try:
            self.bus.nameOwnerChanged.disconnect(self.on_name_owner_changed)
        except (RuntimeError, TypeError):
            pass
        self._pending.clear()
        for name in reversed(list(self._handles)):
            self._release(name)
        self._records.clear()
