# ui/workers/lyrics_fetch_worker.py
from __future__ import annotations

import logging
from typing import Callable, Optional

import requests
from PySide6.QtCore import QObject, QThread, Signal

from core.lyric_provider import LyricNotFound, LyricProvider
from core.models import SongInfo
from db.database import open_database
from db.models import Config

logger = logging.getLogger(__name__)

class LyricsFetchWorker(QThread):
    fetched = Signal(object, str)    # song, raw lyric text
    failed = Signal(object, str)     # song, message

    def __init__(self, db_path: Optional[str], config: Config, song: SongInfo, reload: bool = False, parent=None):
        super().__init__(parent)
        self.db_path = db_path
        self.config = config
        self.song = song
        self.reload = reload

    def run(self):
        db = None
        try:
            # sqlite connections can't cross threads: open one here
            db = open_database(self.db_path) if self.db_path else None
            provider = LyricProvider(db, self.config)
            text = provider.find(self.song, reload=self.reload)
            self.fetched.emit(self.song, text)
        except LyricNotFound:
            self.failed.emit(self.song, "No lyrics found.")
        except requests.RequestException as e:
            logger.warning("Lyrics download failed for %s: %s", self.song.title, e)
            self.failed.emit(self.song, f"Download failed: {e}")
        except Exception as e:
            logger.exception("Lyrics lookup failed for %s", self.song.title)
            self.failed.emit(self.song, f"Download failed: {e}")
        finally:
            if db is not None:
                db.close()


class WorkerLyricLoader(QObject):
    """Runs one LyricsFetchWorker per request and reports back on the GUI thread."""

    def __init__(self, app_state, parent=None):
        super().__init__(parent)
        self.app_state = app_state
        self._workers: set[LyricsFetchWorker] = set()

    def load(self, song: SongInfo, reload: bool, callback: Callable[[SongInfo, Optional[str]], None]) -> None:
        worker = LyricsFetchWorker(self.app_state.db_path, self.app_state.config, song, reload=reload)
        worker.fetched.connect(lambda s, text: callback(s, text))
        worker.failed.connect(lambda s, msg: self._on_failed(callback, s, msg))
        worker.finished.connect(lambda: self._on_finished(worker))
        self._workers.add(worker)
        worker.start()

    def _on_failed(self, callback, song: SongInfo, message: str) -> None:
        logger.info("%s (%s)", message, song.title)
        callback(song, None)

    def _on_finished(self, worker: LyricsFetchWorker) -> None:
        self._workers.discard(worker)
        worker.deleteLater()

    def close(self) -> None:
        for worker in list(self._workers):
            worker.wait()
        self._workers.clear()
