# ui/tray.py
from __future__ import annotations

from PySide6.QtCore import QByteArray, Qt, Slot
from PySide6.QtGui import QIcon, QPainter, QPixmap
from PySide6.QtSvg import QSvgRenderer
from PySide6.QtWidgets import QSystemTrayIcon

from core.state import Notify
from core.utils import format_player_name


def _svg_icon(path_d: str, size: int = 22, color: str = "#e5e7eb") -> QIcon:
    svg = f"""
    <svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="0 0 24 24">
      <path d="{path_d}" fill="{color}"/>
    </svg>
    """.strip()

    renderer = QSvgRenderer(QByteArray(svg.encode("utf-8")))
    pm = QPixmap(size, size)
    pm.fill(Qt.transparent)

    p = QPainter(pm)
    renderer.render(p)
    p.end()

    return QIcon(pm)


# music note, and the same note struck through
SVG_NOTE = "M12 3v10.55A4 4 0 1 0 14 17V7h4V3h-6z"
SVG_NOTE_OFF = "M4.27 3 3 4.27l9 9v.28A4 4 0 1 0 14 17v-1.73L19.73 21 21 19.73 4.27 3zM14 7h4V3h-6v5.18l2 2V7z"

_MESSAGE_ICONS = {
    "info": QSystemTrayIcon.Information,
    "success": QSystemTrayIcon.Information,
    "warn": QSystemTrayIcon.Warning,
    "error": QSystemTrayIcon.Critical,
}


class LyricTray(QSystemTrayIcon):
    def __init__(self, menu, parent=None):
        super().__init__(parent)
        self.icon_on = _svg_icon(SVG_NOTE)
        self.icon_off = _svg_icon(SVG_NOTE_OFF)
        self.setIcon(self.icon_off)
        self.setToolTip("DeskLyric")
        self.setContextMenu(menu)

    @Slot(object)
    def on_active_player(self, name: str | None) -> None:
        if name:
            self.setIcon(self.icon_on)
            self.setToolTip(f"DeskLyric: {format_player_name(name)}")
        else:
            self.setIcon(self.icon_off)
            self.setToolTip("DeskLyric")

    @Slot(object)
    def show_notification(self, n: Notify) -> None:
        self.showMessage("DeskLyric", n.message, _MESSAGE_ICONS.get(n.notify_type, QSystemTrayIcon.Information), 5000)
