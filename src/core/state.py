from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from PySide6.QtCore import QObject, Signal, Slot

from core.models import SelectionPreference
from db.database import get_config, set_config
from db.models import Config

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Notify:
    message: str
    notify_type: str = "info"   # info/success/warn/error

class AppState(QObject):
    """
    Owns the persisted Config and is the one place settings changes come from.
    Components get a Config snapshot when built and follow the signals after.
    """
    notification = Signal(object)           # emits Notify
    configChanged = Signal(object)          # emits Config
    preferenceChanged = Signal(object)      # emits SelectionPreference
    refreshIntervalChanged = Signal(int)    # ms

    def __init__(self, db=None, config: Optional[Config] = None):
        super().__init__()
        self.db = db
        self.app_data_dir: Optional[str] = None
        self.db_path: Optional[str] = None
        self.queued_notifications: list[Notify] = []
        self._config = config or (get_config(db) if db is not None else Config())

    @property
    def config(self) -> Config:
        return self._config

    @Slot(str, str)
    def notify(self, message: str, notify_type: str = "info"):
        self.notification.emit(Notify(message=message, notify_type=notify_type))

    # ---- preference store ----

    def preference(self) -> SelectionPreference:
        return SelectionPreference.from_setting(self._config.preferred_player)

    def set_preference(self, preference: SelectionPreference) -> None:
        self.update_config(preferred_player=preference.to_setting())

    def set_refresh_interval(self, ms: int) -> None:
        self.update_config(refresh_interval=int(ms))

    def update_config(self, **changes) -> Config:
        old = self._config
        new = replace(old, **changes)
        if new == old:
            return old

        self._config = new
        if self.db is not None:
            set_config(self.db, new)
        logger.debug("Config changed: %s", {k: v for k, v in changes.items()})

        self.configChanged.emit(new)
        if new.preferred_player != old.preferred_player:
            self.preferenceChanged.emit(self.preference())
        if new.refresh_interval != old.refresh_interval:
            self.refreshIntervalChanged.emit(new.refresh_interval)
        return new
