import pytest
from PySide6.QtDBus import QDBusConnection, QDBusMessage, QDBusVariant

from player.mpris_bus import (
    DBUS_PATH,
    DBUS_SERVICE,
    MPRIS_PATH,
    PLAYER_IFACE,
    PROPS_IFACE,
    MprisBus,
    unwrap,
)

from conftest import MPRIS

SERVICE = MPRIS + "desklyrictest"
PLAYER_CONNECTION = "desklyric-test-player"


def test_unwrap_plain_values():
    assert unwrap(QDBusVariant("Playing")) == "Playing"
    assert unwrap({"a": QDBusVariant(1), 2: [QDBusVariant("x")]}) == {"a": 1, "2": ["x"]}
    assert unwrap(("t", 3)) == ["t", 3]
    assert unwrap(None) is None


@pytest.fixture
def session(qapp):
    conn = QDBusConnection.sessionBus()
    if not conn.isConnected():
        pytest.skip("no D-Bus session bus")
    return conn


@pytest.fixture
def mpris(session):
    bus = MprisBus(session)
    yield bus
    bus.deleteLater()


@pytest.fixture
def player_conn(session):
    """Second connection that plays the part of an MPRIS player."""
    conn = QDBusConnection.connectToBus(QDBusConnection.SessionBus, PLAYER_CONNECTION)
    assert conn.isConnected()
    assert conn.registerService(SERVICE)
    yield conn
    conn.unregisterService(SERVICE)
    QDBusConnection.disconnectFromBus(PLAYER_CONNECTION)


def test_dict_reply_is_demarshalled(qtbot, session, mpris):
    got = []
    mpris._call(
        DBUS_SERVICE, DBUS_PATH, DBUS_SERVICE, "GetConnectionCredentials",
        [session.baseService()], got.append,
    )
    qtbot.waitUntil(lambda: len(got) == 1)

    args = got[0]
    assert args is not None
    creds = args[0]
    assert isinstance(creds, dict)
    assert isinstance(creds["UnixUserID"], int)


def test_list_names_sees_registered_player(qtbot, mpris, player_conn):
    got = []
    mpris.list_names(got.append)
    qtbot.waitUntil(lambda: len(got) == 1)
    assert SERVICE in got[0]


def test_failed_call_delivers_none(qtbot, mpris):
    got = []
    mpris.get_property(MPRIS + "nobodyhome", PLAYER_IFACE, "Metadata", got.append)
    qtbot.waitUntil(lambda: len(got) == 1)
    assert got == [None]


def test_properties_changed_carries_metadata(qtbot, session, mpris, player_conn):
    seen = []
    watch = mpris.watch_properties(SERVICE, lambda iface, changed: seen.append((iface, changed)))
    # round trip on the watching connection so its match rule is in place
    session.interface().isServiceRegistered(SERVICE)

    msg = QDBusMessage.createSignal(MPRIS_PATH, PROPS_IFACE, "PropertiesChanged")
    msg.setArguments([
        PLAYER_IFACE,
        {
            "PlaybackStatus": "Paused",
            "Metadata": {"xesam:title": "Song", "xesam:album": "Album", "mpris:length": 200000000},
        },
        [],
    ])
    assert player_conn.send(msg)

    qtbot.waitUntil(lambda: len(seen) == 1)
    iface, changed = seen[0]
    assert iface == PLAYER_IFACE
    assert changed["PlaybackStatus"] == "Paused"
    assert changed["Metadata"]["xesam:title"] == "Song"
    assert changed["Metadata"]["xesam:album"] == "Album"
    assert changed["Metadata"]["mpris:length"] == 200000000

    watch.close()


def test_name_owner_changes_are_forwarded(qtbot, session, mpris):
    name = MPRIS + "desklyricappear"
    conn = QDBusConnection.connectToBus(QDBusConnection.SessionBus, "desklyric-test-appear")
    try:
        with qtbot.waitSignal(
            mpris.nameOwnerChanged,
            check_params_cb=lambda n, old, new: n == name and not old and bool(new),
        ):
            assert conn.registerService(name)
    finally:
        conn.unregisterService(name)
        QDBusConnection.disconnectFromBus("desklyric-test-appear")
