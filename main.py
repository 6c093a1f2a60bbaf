import logging
import os
import sys
from pathlib import Path

from PySide6.QtCore import QStandardPaths, Qt
from PySide6.QtWidgets import QApplication

ROOT = Path(__file__).resolve().parent
SRC_DIR = ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from core.state import AppState, Notify
from db.database import initialize_database
from player.lyric_sync import LyricSync
from player.mpris_bus import MprisBus, MprisPositionSource
from player.registry import PlayerRegistry
from ui.lyric_paper import LyricPaper
from ui.player_menu import PlayerMenu
from ui.tray import LyricTray
from ui.workers.lyrics_fetch_worker import WorkerLyricLoader

logger = logging.getLogger(__name__)

def setup_logging() -> None:
    level = logging.DEBUG if os.getenv("DESKLYRIC_DEBUG") == "1" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def get_app_data_dir() -> str:
    base = QStandardPaths.writableLocation(QStandardPaths.AppDataLocation)
    os.makedirs(base, exist_ok=True)
    return base

def init_app_state() -> AppState:
    app_data_dir = get_app_data_dir()
    db = initialize_database(app_data_dir)

    app_state = AppState(db)
    app_state.app_data_dir = app_data_dir
    app_state.db_path = os.path.join(app_data_dir, "db.sqlite3")
    return app_state

def main() -> int:
    setup_logging()

    qt_app = QApplication(sys.argv)
    qt_app.setApplicationName("desklyric")
    qt_app.setQuitOnLastWindowClosed(False)

    app_state = init_app_state()

    bus = MprisBus()
    if not bus.connected:
        app_state.queued_notifications.append(
            Notify(message="Session bus is not available; no players will be found.", notify_type="error")
        )

    registry = PlayerRegistry(bus, allow_video_players=app_state.config.allow_video_players)
    loader = WorkerLyricLoader(app_state)
    sync = LyricSync(
        registry,
        app_state,
        loader,
        source_factory=lambda name: MprisPositionSource(bus, name),
    )

    paper = LyricPaper(app_state.config)
    sync.lineChanged.connect(paper.set_line)
    sync.visibleChanged.connect(paper.set_visible_lyrics)
    app_state.configChanged.connect(paper.apply_config)

    menu = PlayerMenu(registry, app_state, sync)
    menu.quitRequested.connect(qt_app.quit)
    paper.setContextMenuPolicy(Qt.CustomContextMenu)
    paper.customContextMenuRequested.connect(lambda pos: menu.popup(paper.mapToGlobal(pos)))

    tray = LyricTray(menu)
    sync.activePlayerChanged.connect(tray.on_active_player)
    app_state.notification.connect(tray.show_notification)
    tray.show()

    for n in app_state.queued_notifications:
        tray.show_notification(n)
    app_state.queued_notifications.clear()

    def shutdown() -> None:
        # reverse of construction
        sync.close()
        loader.close()
        registry.close()
        app_state.db.close()
        logger.info("Bye")

    qt_app.aboutToQuit.connect(shutdown)
    sync.start()

    return qt_app.exec()

if __name__ == "__main__":
    raise SystemExit(main())
