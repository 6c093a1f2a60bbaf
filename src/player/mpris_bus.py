# player/mpris_bus.py
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QStandardPaths, Signal, Slot, SLOT
from PySide6.QtDBus import (
    QDBusArgument,
    QDBusConnection,
    QDBusMessage,
    QDBusObjectPath,
    QDBusPendingCallWatcher,
    QDBusSignature,
    QDBusVariant,
)

logger = logging.getLogger(__name__)

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PROPS_IFACE = "org.freedesktop.DBus.Properties"

MPRIS_PATH = "/org/mpris/MediaPlayer2"
MPRIS_IFACE = "org.mpris.MediaPlayer2"
PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"


# -----------------------------
# Utilities
# -----------------------------

def unwrap(value: Any) -> Any:
    """
    Turn QtDBus containers into plain Python values.

    Raises ValueError for an argument that cannot be demarshalled.
    """
    if isinstance(value, QDBusVariant):
        return unwrap(value.variant())
    if isinstance(value, QDBusArgument):
        return _demarshal(value)
    if isinstance(value, QDBusObjectPath):
        return value.path()
    if isinstance(value, QDBusSignature):
        return value.signature()
    if isinstance(value, dict):
        return {str(k): unwrap(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [unwrap(v) for v in value]
    return value


def _demarshal(arg: QDBusArgument) -> Any:
    # asVariant() on a container hands back the same container, so walk it
    kind = arg.currentType()

    if kind == QDBusArgument.ElementType.MapType:
        out = {}
        arg.beginMap()
        while not arg.atEnd():
            arg.beginMapEntry()
            key = _demarshal(arg)
            out[str(key)] = _demarshal(arg)
            arg.endMapEntry()
        arg.endMap()
        return out

    if kind == QDBusArgument.ElementType.ArrayType:
        items = []
        arg.beginArray()
        while not arg.atEnd():
            items.append(_demarshal(arg))
        arg.endArray()
        return items

    if kind == QDBusArgument.ElementType.StructureType:
        fields = []
        arg.beginStructure()
        while not arg.atEnd():
            fields.append(_demarshal(arg))
        arg.endStructure()
        return fields

    if kind in (QDBusArgument.ElementType.BasicType, QDBusArgument.ElementType.VariantType):
        return unwrap(arg.asVariant())

    raise ValueError(f"Cannot demarshal D-Bus argument {arg.currentSignature()!r}")


def read_desktop_categories(desktop_entry: str) -> Optional[list[str]]:
    """
    Categories= of an installed .desktop file, e.g. ["AudioVideo", "Audio", "Player"].
    None if the file can't be found or has no categories.
    """
    if not desktop_entry:
        return None

    file_name = desktop_entry if desktop_entry.endswith(".desktop") else f"{desktop_entry}.desktop"
    path = QStandardPaths.locate(QStandardPaths.ApplicationsLocation, file_name)
    if not path:
        return None

    try:
        with open(path, "r", encoding="utf-8", errors="replace") as fh:
            in_entry = False
            for raw in fh:
                line = raw.strip()
                if line.startswith("["):
                    in_entry = line == "[Desktop Entry]"
                    continue
                if in_entry and line.startswith("Categories="):
                    cats = [c for c in line.split("=", 1)[1].split(";") if c]
                    return cats or None
    except OSError as e:
        logger.debug("Failed to read %s: %s", path, e)
    return None


# -----------------------------
# Subscriptions
# -----------------------------

class BusWatch(QObject):
    """
    Receiver for the signals of one player. close() drops every D-Bus match it
    registered; safe to call twice.
    """

    def __init__(
        self,
        connection: QDBusConnection,
        name: str,
        on_properties: Optional[Callable[[str, dict], None]] = None,
        on_seeked: Optional[Callable[[int], None]] = None,
    ):
        super().__init__()
        self._bus = connection
        self._name = name
        self._on_properties = on_properties
        self._on_seeked = on_seeked
        self._matches: list[tuple[str, str, str]] = []

        if on_properties is not None:
            self._subscribe(PROPS_IFACE, "PropertiesChanged", SLOT("_properties_changed(QDBusMessage)"))
        if on_seeked is not None:
            self._subscribe(PLAYER_IFACE, "Seeked", SLOT("_seeked(qlonglong)"))

    def _subscribe(self, iface: str, signal: str, slot: str) -> None:
        if self._bus.connect(self._name, MPRIS_PATH, iface, signal, self, slot):
            self._matches.append((iface, signal, slot))
        else:
            logger.debug("Failed to watch %s.%s on %s", iface, signal, self._name)

    @Slot(QDBusMessage)
    def _properties_changed(self, msg: QDBusMessage) -> None:
        args = msg.arguments()
        if len(args) < 2 or self._on_properties is None:
            return
        try:
            changed = unwrap(args[1])
        except ValueError as e:
            logger.debug("Bad PropertiesChanged from %s: %s", self._name, e)
            return
        if isinstance(changed, dict):
            self._on_properties(str(args[0]), changed)

    @Slot("qlonglong")
    def _seeked(self, position_us: int) -> None:
        if self._on_seeked is not None:
            self._on_seeked(int(position_us))

    def close(self) -> None:
        while self._matches:
            iface, signal, slot = self._matches.pop()
            self._bus.disconnect(self._name, MPRIS_PATH, iface, signal, self, slot)
        self._on_properties = None
        self._on_seeked = None
        self.deleteLater()


# -----------------------------
# Bus discovery (QtDBus)
# -----------------------------

class MprisBus(QObject):
    """
    Bus discovery capability backed by the session bus.

    Every call is asynchronous: results are delivered to a callback from the Qt
    event loop. A failed round trip delivers None.
    """
    nameOwnerChanged = Signal(str, str, str)   # name, old owner, new owner

    def __init__(self, connection: Optional[QDBusConnection] = None, parent=None):
        super().__init__(parent)
        self._bus = connection or QDBusConnection.sessionBus()
        self._pending: set[QDBusPendingCallWatcher] = set()

        if not self._bus.isConnected():
            logger.warning("D-Bus session bus is not available")

        self._bus.connect(
            DBUS_SERVICE, DBUS_PATH, DBUS_SERVICE, "NameOwnerChanged",
            self, SLOT("_name_owner_changed(QString,QString,QString)"),
        )

    @property
    def connected(self) -> bool:
        return self._bus.isConnected()

    @Slot(str, str, str)
    def _name_owner_changed(self, name: str, old_owner: str, new_owner: str) -> None:
        self.nameOwnerChanged.emit(name, old_owner, new_owner)

    # ---- protocol helpers ----

    def _call(self, service: str, path: str, iface: str, method: str, args: list,
              callback: Callable[[Optional[list]], None]) -> None:
        msg = QDBusMessage.createMethodCall(service, path, iface, method)
        msg.setArguments(args)
        watcher = QDBusPendingCallWatcher(self._bus.asyncCall(msg), self)
        self._pending.add(watcher)

        def finished(w: QDBusPendingCallWatcher) -> None:
            self._pending.discard(w)
            w.deleteLater()
            if w.isError():
                err = w.error()
                logger.debug("%s.%s on %s failed: %s", iface, method, service, err.message())
                callback(None)
                return
            try:
                values = [unwrap(a) for a in w.reply().arguments()]
            except ValueError as e:
                logger.debug("%s.%s on %s: %s", iface, method, service, e)
                values = None
            callback(values)

        watcher.finished.connect(finished)

    # ---- capability ----

    def list_names(self, callback: Callable[[Optional[list[str]]], None]) -> None:
        self._call(
            DBUS_SERVICE, DBUS_PATH, DBUS_SERVICE, "ListNames", [],
            lambda args: callback([str(n) for n in args[0]] if args else None),
        )

    def get_property(self, name: str, iface: str, prop: str, callback: Callable[[Any], None]) -> None:
        self._call(
            name, MPRIS_PATH, PROPS_IFACE, "Get", [iface, prop],
            lambda args: callback(args[0] if args else None),
        )

    def get_application_categories(self, name: str, callback: Callable[[Optional[list[str]]], None]) -> None:
        def on_entry(entry: Any) -> None:
            if not isinstance(entry, str) or not entry:
                callback(None)
                return
            callback(read_desktop_categories(entry))

        self.get_property(name, MPRIS_IFACE, "DesktopEntry", on_entry)

    def watch_properties(self, name: str, handler: Callable[[str, dict], None]) -> BusWatch:
        return BusWatch(self._bus, name, on_properties=handler)

    def watch_seeked(self, name: str, handler: Callable[[int], None]) -> BusWatch:
        return BusWatch(self._bus, name, on_seeked=handler)


class MprisPositionSource:
    """Position source for one player: Player.Position in ms, None on failure."""

    def __init__(self, bus, name: str):
        self.bus = bus
        self.name = name

    def request_position(self, callback: Callable[[Optional[int]], None]) -> None:
        def on_value(value: Any) -> None:
            try:
                position_ms = int(value) // 1000 if value is not None else None
            except (TypeError, ValueError):
                position_ms = None
            callback(position_ms)

        self.bus.get_property(self.name, PLAYER_IFACE, "Position", on_value)
