"""Blocking helpers: managed objects, properties and change signals."""

from __future__ import annotations

import pytest
from jeepney.low_level import HeaderFields, MessageType
from jeepney.wrappers import new_error

from dbusroute import (
    DBusError,
    RemoteError,
    TransportError,
    emit_properties_changed,
    get_managed_objects,
    get_property,
    set_property,
)

SERVICE = "org.example.Service"
PATH = "/org/x"
IFACE = "org.x.Iface"


class BrokenConnection:
    def send(self, message):
        raise ConnectionResetError("bus went away")

    def send_and_get_reply(self, message):
        raise ConnectionResetError("bus went away")


@pytest.mark.parametrize(
    "prop,value",
    [("Name", ("s", "kitchen")), ("Volume", ("i", 42)), ("Muted", ("b", True))],
)
def test_get_set_get_round_trip(peer, peer_connection, prop, value):
    peer.properties[(PATH, IFACE, prop)] = value

    current = get_property(peer_connection, SERVICE, PATH, IFACE, prop)
    assert set_property(peer_connection, SERVICE, PATH, IFACE, prop, current) is True
    assert get_property(peer_connection, SERVICE, PATH, IFACE, prop) == current == value
    assert [r.header.fields[HeaderFields.member] for r in peer_connection.requests] == [
        "Get",
        "Set",
        "Get",
    ]


def test_requests_are_addressed_to_properties_interface(peer_connection):
    set_property(peer_connection, SERVICE, PATH, IFACE, "Volume", ("i", 1))
    get_property(peer_connection, SERVICE, PATH, IFACE, "Volume")

    set_request, get_request = peer_connection.requests
    for request, member, signature in ((set_request, "Set", "ssv"), (get_request, "Get", "ss")):
        fields = request.header.fields
        assert fields[HeaderFields.destination] == SERVICE
        assert fields[HeaderFields.path] == PATH
        assert fields[HeaderFields.interface] == "org.freedesktop.DBus.Properties"
        assert fields[HeaderFields.member] == member
        assert fields[HeaderFields.signature] == signature
    assert set_request.body == (IFACE, "Volume", ("i", 1))
    assert get_request.body == (IFACE, "Volume")


def test_get_managed_objects_iterates_pairs(peer, peer_connection):
    peer.managed = {
        "/org/x/1": {IFACE: {"Volume": ("i", 1)}},
        "/org/x/2": {IFACE: {"Volume": ("i", 2)}},
    }
    objects = get_managed_objects(peer_connection, SERVICE, "/")

    assert dict(objects) == peer.managed
    assert list(objects) == []
    request = peer_connection.requests[0]
    assert request.header.fields[HeaderFields.interface] == "org.freedesktop.DBus.ObjectManager"
    assert request.header.fields[HeaderFields.member] == "GetManagedObjects"


def test_get_managed_objects_empty(peer_connection):
    assert list(get_managed_objects(peer_connection, SERVICE, "/")) == []


def test_remote_error_carries_peer_name_and_text(peer, peer_connection):
    peer.fail_with = ("org.x.Error.Denied", "Permission denied by policy")
    with pytest.raises(RemoteError) as excinfo:
        set_property(peer_connection, SERVICE, PATH, IFACE, "Volume", ("i", 1))
    assert excinfo.value.name == "org.x.Error.Denied"
    assert excinfo.value.message == "Permission denied by policy"
    assert str(excinfo.value) == "[org.x.Error.Denied] Permission denied by policy"


def test_unknown_property_is_remote_error(peer_connection):
    with pytest.raises(RemoteError) as excinfo:
        get_property(peer_connection, SERVICE, PATH, IFACE, "Missing")
    assert excinfo.value.name == "org.freedesktop.DBus.Error.UnknownProperty"
    assert "Missing" in excinfo.value.message


def test_remote_error_without_text(peer_connection):
    peer_connection.responder = lambda request: new_error(request, "org.x.Error.Quiet")
    with pytest.raises(RemoteError) as excinfo:
        get_managed_objects(peer_connection, SERVICE, "/")
    assert excinfo.value.message == ""


@pytest.mark.parametrize(
    "call",
    [
        lambda c: get_managed_objects(c, SERVICE, "/"),
        lambda c: get_property(c, SERVICE, PATH, IFACE, "Volume"),
        lambda c: set_property(c, SERVICE, PATH, IFACE, "Volume", ("i", 1)),
        lambda c: emit_properties_changed(c, PATH, IFACE, {"Volume": ("i", 1)}),
    ],
)
def test_transport_failure(call):
    with pytest.raises(TransportError) as excinfo:
        call(BrokenConnection())
    assert isinstance(excinfo.value, DBusError)
    assert isinstance(excinfo.value.__cause__, OSError)


def test_emit_properties_changed_sends_one_signal(connection):
    assert emit_properties_changed(connection, PATH, IFACE, {"Volume": ("i", 50)}) is True

    assert len(connection.sent) == 1
    signal = connection.sent[0]
    fields = signal.header.fields
    assert signal.header.message_type == MessageType.signal
    assert fields[HeaderFields.path] == PATH
    assert fields[HeaderFields.interface] == "org.freedesktop.DBus.Properties"
    assert fields[HeaderFields.member] == "PropertiesChanged"
    assert fields[HeaderFields.signature] == "sa{sv}as"
    assert signal.body == (IFACE, {"Volume": ("i", 50)}, [])


def test_emit_with_invalidated_names(connection):
    emit_properties_changed(connection, PATH, IFACE, {}, invalidated=("Model",))
    assert connection.sent[0].body == (IFACE, {}, ["Model"])
