# ui/lyric_paper.py
from __future__ import annotations

from PySide6.QtCore import Qt, QPoint, QSize, Slot
from PySide6.QtGui import QBrush, QColor, QFont, QFontMetrics, QLinearGradient, QPainter, QPainterPath, QPen
from PySide6.QtWidgets import QWidget

from db.models import Config


class LyricPaper(QWidget):
    """
    Frameless always-on-top strip showing the current lyric line.
    The sung part (fraction) is painted in the active color, the rest in the
    inactive one.
    """

    def __init__(self, config: Config, parent=None):
        super().__init__(parent)
        self.setWindowFlags(Qt.FramelessWindowHint | Qt.WindowStaysOnTopHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setMinimumSize(480, 72)

        self._text = ""
        self._fraction = 0.0
        self._drag_from: QPoint | None = None

        font = QFont()
        font.setPointSize(26)
        font.setBold(True)
        self.setFont(font)

        self.apply_config(config)

    @property
    def text(self) -> str:
        return self._text

    @property
    def fraction(self) -> float:
        return self._fraction

    @Slot(object)
    def apply_config(self, config: Config) -> None:
        self.active_color = QColor(config.active_color)
        self.inactive_color = QColor(config.inactive_color)
        self.show_progress = bool(config.show_progress)
        self.update()

    @Slot(str, float)
    def set_line(self, text: str, fraction: float) -> None:
        fraction = min(1.0, max(0.0, float(fraction)))
        if text == self._text and fraction == self._fraction:
            return
        self._text = text
        self._fraction = fraction
        self.update()

    @Slot(bool)
    def set_visible_lyrics(self, visible: bool) -> None:
        self.setVisible(visible)

    def paintEvent(self, event):
        if not self._text:
            return

        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)

        fm = QFontMetrics(self.font())
        width = fm.horizontalAdvance(self._text)
        x = max(0, (self.width() - width) // 2)
        y = (self.height() + fm.ascent() - fm.descent()) // 2

        path = QPainterPath()
        path.addText(x, y, self.font(), self._text)

        if self.show_progress:
            grad = QLinearGradient(x, 0, x + width, 0)
            stop = self._fraction
            grad.setColorAt(0.0, self.active_color)
            grad.setColorAt(stop, self.active_color)
            if stop < 1.0:
                grad.setColorAt(min(1.0, stop + 0.0001), self.inactive_color)
                grad.setColorAt(1.0, self.inactive_color)
            brush = QBrush(grad)
        else:
            brush = QBrush(self.active_color)

        # outline keeps the text readable on any wallpaper
        p.setPen(QPen(QColor(0, 0, 0, 160), 3))
        p.drawPath(path)
        p.fillPath(path, brush)
        p.end()

    def sizeHint(self):
        fm = QFontMetrics(self.font())
        return QSize(800, fm.height() + 24)

    # drag anywhere to move the window
    def mousePressEvent(self, event):
        if event.button() == Qt.LeftButton:
            self._drag_from = event.globalPosition().toPoint() - self.frameGeometry().topLeft()
            event.accept()
        else:
            super().mousePressEvent(event)

    def mouseMoveEvent(self, event):
        if self._drag_from is not None and event.buttons() & Qt.LeftButton:
            self.move(event.globalPosition().toPoint() - self._drag_from)
            event.accept()
        else:
            super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event):
        self._drag_from = None
        super().mouseReleaseEvent(event)
