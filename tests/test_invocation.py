"""One-shot invocation handle."""

from __future__ import annotations

import pytest
from jeepney.low_level import HeaderFields, MessageFlag, MessageType

from dbusroute import DBusError, InvocationError, MethodInvocation
from dbusroute.core.invocation import MethodCall


def test_identity_comes_from_message(make_call):
    message = make_call("/org/x", "org.x.Iface", "Get", "su", ("a", 1))
    invocation = MethodInvocation(message, lambda reply: None)

    assert invocation.sender == ":1.7"
    assert invocation.path == "/org/x"
    assert invocation.interface == "org.x.Iface"
    assert invocation.method == "Get"
    assert invocation.signature == "su"
    assert invocation.parameters == ("a", 1)
    assert not invocation.completed


def test_return_value_sends_one_reply(make_call):
    sent = []
    message = make_call("/org/x", "org.x.Iface", "Get")
    invocation = MethodInvocation(message, sent.append)

    invocation.return_value("s", ("ok",))

    assert invocation.completed
    assert len(sent) == 1
    reply = sent[0]
    assert reply.header.message_type == MessageType.method_return
    assert reply.header.fields[HeaderFields.reply_serial] == message.header.serial
    assert reply.body == ("ok",)


def test_second_completion_is_rejected(make_call):
    sent = []
    invocation = MethodInvocation(make_call("/org/x", "org.x.Iface", "Get"), sent.append)
    invocation.return_error("org.x.Error.Busy", "busy")

    with pytest.raises(InvocationError):
        invocation.return_value()
    assert len(sent) == 1
    assert sent[0].header.fields[HeaderFields.error_name] == "org.x.Error.Busy"
    assert sent[0].body == ("busy",)


def test_return_dbus_error_uses_error_name(make_call):
    sent = []
    invocation = MethodInvocation(make_call("/org/x", "org.x.Iface", "Get"), sent.append)
    invocation.return_dbus_error(DBusError("nope", name="org.x.Error.Nope"))
    assert sent[0].header.fields[HeaderFields.error_name] == "org.x.Error.Nope"
    assert sent[0].body == ("nope",)


def test_no_reply_expected_completes_silently(make_call):
    sent = []
    message = make_call("/org/x", "org.x.Iface", "Notify")
    message.header.flags = MessageFlag.no_reply_expected
    invocation = MethodInvocation(message, sent.append)

    invocation.return_value()

    assert invocation.completed
    assert sent == []


def test_call_descriptor_from_invocation(make_call):
    invocation = MethodInvocation(make_call("/org/x", "org.x.Iface", "Get"), lambda reply: None)
    call = MethodCall.from_invocation(invocation, context={"volume": 3})
    assert (call.sender, call.path, call.interface, call.method) == (
        ":1.7",
        "/org/x",
        "org.x.Iface",
        "Get",
    )
    assert call.context == {"volume": 3}
