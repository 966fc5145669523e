"""Shared fixtures: in-memory connections speaking jeepney messages."""

from __future__ import annotations

import itertools

import pytest
from jeepney.low_level import HeaderFields, MessageType
from jeepney.wrappers import DBusAddress, new_error, new_method_call, new_method_return

_serials = itertools.count(1)


def build_call(path, interface, method, signature=None, body=(), *, sender=":1.7"):
    message = new_method_call(
        DBusAddress(path, bus_name="org.example.Service", interface=interface),
        method,
        signature,
        body,
    )
    if sender is not None:
        message.header.fields[HeaderFields.sender] = sender
    message.header.serial = next(_serials)
    return message


class RecordingConnection:
    """Connection double: records sent messages, answers requests via ``responder``."""

    def __init__(self, responder=None):
        self.sent = []
        self.requests = []
        self.incoming = []
        self.responder = responder

    def send(self, message):
        self.sent.append(message)

    def send_and_get_reply(self, message):
        self.requests.append(message)
        return self.responder(message)

    def receive(self, timeout=None):
        return self.incoming.pop(0)


class FakePeer:
    """Remote service holding properties and managed objects in memory."""

    def __init__(self):
        self.properties = {}
        self.managed = {}
        self.fail_with = None

    def __call__(self, request):
        fields = request.header.fields
        member = fields[HeaderFields.member]
        if self.fail_with is not None:
            name, text = self.fail_with
            return new_error(request, name, "s", (text,))
        if member == "GetManagedObjects":
            return new_method_return(request, "a{oa{sa{sv}}}", (self.managed,))
        path = fields[HeaderFields.path]
        if member == "Get":
            interface, name = request.body
            key = (path, interface, name)
            if key not in self.properties:
                return new_error(
                    request,
                    "org.freedesktop.DBus.Error.UnknownProperty",
                    "s",
                    (f"No such property '{name}'",),
                )
            return new_method_return(request, "v", (self.properties[key],))
        if member == "Set":
            interface, name, value = request.body
            self.properties[(path, interface, name)] = value
            return new_method_return(request)
        return new_error(request, "org.freedesktop.DBus.Error.UnknownMethod")


@pytest.fixture
def make_call():
    return build_call


@pytest.fixture
def connection():
    return RecordingConnection()


@pytest.fixture
def peer():
    return FakePeer()


@pytest.fixture
def peer_connection(peer):
    return RecordingConnection(responder=peer)


def _error_name(message):
    assert message.header.message_type == MessageType.error
    return message.header.fields[HeaderFields.error_name]


@pytest.fixture
def error_name():
    return _error_name
