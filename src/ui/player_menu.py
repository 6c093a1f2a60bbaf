# ui/player_menu.py
from __future__ import annotations

from PySide6.QtCore import Signal
from PySide6.QtGui import QAction, QActionGroup
from PySide6.QtWidgets import QMenu

from core.models import SelectionPreference
from core.utils import format_player_name


def player_label(name: str, title: str | None) -> str:
    label = format_player_name(name)
    return f"{label}: {title}" if title else label


class PlayerMenu(QMenu):
    """
    Tray/context menu: media source selection plus lyric actions.

    The player list is rebuilt each time the menu opens. Every known player is
    verified first; only connected players with a track are listed, labelled
    with their current title.
    """
    quitRequested = Signal()

    def __init__(self, registry, state, sync, parent=None):
        super().__init__(parent)
        self.registry = registry
        self.state = state
        self.sync = sync
        self._generation = 0

        self.source_menu = self.addMenu("Media Source")
        self.source_group = QActionGroup(self)
        self.source_group.setExclusive(True)
        self.source_menu.aboutToShow.connect(self.rebuild_sources)

        self.addSeparator()

        self.act_resync = QAction("Resynchronize", self)
        self.act_resync.triggered.connect(self.sync.resynchronize)
        self.addAction(self.act_resync)

        self.act_reload = QAction("Reload Lyrics", self)
        self.act_reload.triggered.connect(self.sync.reload_lyric)
        self.addAction(self.act_reload)

        self.act_rescan = QAction("Rescan Players", self)
        self.act_rescan.triggered.connect(self.registry.scan)
        self.addAction(self.act_rescan)

        self.act_progress = QAction("Show Progress", self)
        self.act_progress.setCheckable(True)
        self.act_progress.setChecked(self.state.config.show_progress)
        self.act_progress.toggled.connect(lambda on: self.state.update_config(show_progress=on))
        self.addAction(self.act_progress)

        self.addSeparator()
        self.act_quit = QAction("Quit", self)
        self.act_quit.triggered.connect(self.quitRequested.emit)
        self.addAction(self.act_quit)

        self.sync.songChanged.connect(self._update_actions)
        self.sync.activePlayerChanged.connect(self._update_actions)
        self._update_actions()

    def _update_actions(self, *_):
        has_player = self.sync.active_player is not None
        self.act_resync.setEnabled(has_player)
        self.act_reload.setEnabled(self.sync.song is not None)

    # ----------------------------
    # Media source list
    # ----------------------------

    def _add_source(self, label: str, preference: SelectionPreference, checked: bool) -> QAction:
        act = QAction(label, self.source_menu)
        act.setCheckable(True)
        act.setChecked(checked)
        act.setData(preference.to_setting())
        act.triggered.connect(lambda _=False, p=preference: self.choose(p))
        self.source_group.addAction(act)
        self.source_menu.addAction(act)
        return act

    def rebuild_sources(self) -> None:
        self._generation += 1
        generation = self._generation

        for act in list(self.source_group.actions()):
            self.source_group.removeAction(act)
        self.source_menu.clear()

        preference = self.state.preference()
        self._add_source("Auto", SelectionPreference.auto(), preference.is_auto)
        self._add_source("None", SelectionPreference.none(), preference.is_none)
        self.source_menu.addSeparator()

        for name in self.registry.names():
            def on_verified(listed: bool, name=name) -> None:
                # menu was reopened meanwhile
                if generation != self._generation or not listed:
                    return
                rec = self.registry.get(name)
                if rec is None:
                    return
                self._add_source(
                    player_label(name, rec.current_title),
                    SelectionPreference.pinned(name),
                    self.state.preference().pinned_id == name,
                )

            self.registry.verify_and_refresh(name, on_verified)

    def choose(self, preference: SelectionPreference) -> None:
        current = self.state.preference()
        # picking the pinned player again goes back to Auto
        if preference.pinned_id is not None and preference == current:
            preference = SelectionPreference.auto()
        self.sync.set_preference(preference)
